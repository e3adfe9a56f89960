"""
CloudFlare DNS provider implementation.

This module implements the three CloudFlare DNS API v4 calls the reconciler
needs: list records matching (zone, type, name), create a record, and update
a record by ID. Only API Token authentication is supported.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from starlette import status as st_status

from cloudflare_ddns.models import RemoteRecordState
from cloudflare_ddns.providers.base import BaseDNSProvider, ProviderResult

if TYPE_CHECKING:
    from typing import Final

    from cloudflare_ddns.models import RecordType


# CloudFlare API base URL
CF_API_BASE: Final[str] = "https://api.cloudflare.com/client/v4"

# HTTP timeout in seconds
HTTP_TIMEOUT: Final[float] = 30.0


logger = logging.getLogger(__name__)


def _error_message(data: Any) -> str:
    """
    Extract the first error message from a CloudFlare response body.

    Parameters
    ----------
    data : Any
        Decoded JSON body.

    Returns
    -------
    str
        The message, or "Unknown error".
    """
    errors = data.get("errors") if isinstance(data, dict) else None
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("message", "Unknown error"))
    return "Unknown error"


class CloudFlareProvider(BaseDNSProvider):
    """
    CloudFlare DNS provider bound to one zone.

    Uses CloudFlare API v4 with API Token authentication. Every call is
    judged by the `success` flag of the response body, not only the HTTP
    status.
    """

    def __init__(
        self,
        api_token: str,
        zone_id: str,
        client: httpx.AsyncClient,
        *,
        api_base: str = CF_API_BASE,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        """
        Initialize the provider.

        Parameters
        ----------
        api_token : str
            CloudFlare API Token with Zone:DNS:Edit permission.
        zone_id : str
            The zone identifier.
        client : httpx.AsyncClient
            HTTP client, owned by the caller.
        api_base : str, optional
            Base URL of the API.
        timeout : float, optional
            Timeout in seconds for each call.
        """
        self._zone_id = zone_id
        self._client = client
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    @property
    def name(self) -> str:
        """Get the provider name."""
        return "cloudflare"

    @property
    def _records_url(self) -> str:
        return f"{self._api_base}/zones/{self._zone_id}/dns_records"

    async def fetch_record(
        self,
        name: str,
        record_type: RecordType,
    ) -> RemoteRecordState | None:
        """
        Fetch the record matching (zone, name, type).

        Parameters
        ----------
        name : str
            The fully qualified domain name.
        record_type : RecordType
            The record type.

        Returns
        -------
        RemoteRecordState | None
            The current state, or None on any failure.
        """
        url = self._records_url
        params = {"type": record_type.value, "name": name}

        try:
            response = await self._client.get(
                url, headers=self._headers, params=params, timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning("[cloudflare] Listing %s %s timed out", record_type, name)
            return None
        except httpx.RequestError as e:
            logger.warning("[cloudflare] Network request failed: '%s'", e)
            return None

        logger.debug(
            "[cloudflare] GET %s?type=%s&name=%s -> %d",
            url,
            record_type,
            name,
            response.status_code,
        )

        if response.status_code != st_status.HTTP_200_OK:
            logger.warning("[cloudflare] Failed to list records: '%s'", response.text)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("[cloudflare] Malformed response body: '%s'", response.text)
            return None
        logger.debug("[cloudflare] Response: %s", response.text)

        if not isinstance(data, dict) or data.get("success") is not True:
            logger.warning(
                "[cloudflare] Listing %s %s was not successful: %s",
                record_type,
                name,
                _error_message(data),
            )
            return None

        records = data.get("result")
        if not isinstance(records, list):
            logger.warning("[cloudflare] Response has no result list: '%s'", response.text)
            return None

        if not records:
            return RemoteRecordState()

        if len(records) > 1:
            logger.warning(
                "[cloudflare] Multiple records (%d) found for %s %s; using the first.",
                len(records),
                name,
                record_type,
            )

        first = records[0]
        if not isinstance(first, dict) or not first.get("id"):
            logger.warning("[cloudflare] Record without ID in response: '%s'", response.text)
            return None

        content = first.get("content")
        return RemoteRecordState(
            record_id=str(first["id"]),
            content=str(content) if content is not None else None,
        )

    async def create_record(
        self,
        name: str,
        record_type: RecordType,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> ProviderResult:
        """
        Create a new DNS record.

        Parameters
        ----------
        name : str
            The fully qualified domain name.
        record_type : RecordType
            The record type.
        content : str
            The address to publish.
        ttl : int
            Time to live (1 = automatic).
        proxied : bool
            Whether CloudFlare proxies the record.

        Returns
        -------
        ProviderResult
            The result of the operation.
        """
        url = self._records_url
        payload = self._payload(name, record_type, content, ttl, proxied)

        try:
            response = await self._client.post(
                url, headers=self._headers, json=payload, timeout=self._timeout,
            )
        except httpx.RequestError as e:
            return ProviderResult(success=False, message=f"Request error: {e!r}")

        logger.debug("[cloudflare] POST %s -> %d", url, response.status_code)
        logger.debug("[cloudflare] Response: %s", response.text)

        data = self._decode(response)
        if data is not None and data.get("success") is True:
            result = data.get("result") or {}
            return ProviderResult(
                success=True,
                message=f"DNS record created for {name}",
                action="created",
                record_id=str(result.get("id", "")),
                extra={"cf_ray": response.headers.get("cf-ray", "")},
            )
        return ProviderResult(
            success=False,
            message=f"Failed to create record (HTTP {response.status_code}): {_error_message(data)}",
        )

    async def update_record(
        self,
        record_id: str,
        name: str,
        record_type: RecordType,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> ProviderResult:
        """
        Replace an existing DNS record.

        Parameters
        ----------
        record_id : str
            The record ID.
        name : str
            The fully qualified domain name.
        record_type : RecordType
            The record type.
        content : str
            The address to publish.
        ttl : int
            Time to live (1 = automatic).
        proxied : bool
            Whether CloudFlare proxies the record.

        Returns
        -------
        ProviderResult
            The result of the operation.
        """
        url = f"{self._records_url}/{record_id}"
        payload = self._payload(name, record_type, content, ttl, proxied)

        try:
            response = await self._client.put(
                url, headers=self._headers, json=payload, timeout=self._timeout,
            )
        except httpx.RequestError as e:
            return ProviderResult(success=False, message=f"Request error: {e!r}")

        logger.debug("[cloudflare] PUT %s -> %d", url, response.status_code)
        logger.debug("[cloudflare] Response: %s", response.text)

        data = self._decode(response)
        if data is not None and data.get("success") is True:
            return ProviderResult(
                success=True,
                message=f"DNS record updated for {name}",
                action="updated",
                record_id=record_id,
                extra={"cf_ray": response.headers.get("cf-ray", "")},
            )
        return ProviderResult(
            success=False,
            message=f"Failed to update record (HTTP {response.status_code}): {_error_message(data)}",
        )

    @staticmethod
    def _payload(
        name: str,
        record_type: RecordType,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> dict[str, str | int | bool]:
        # ttl and proxied are passed through; CloudFlare validates them
        return {
            "type": record_type.value,
            "name": name,
            "content": content,
            "ttl": ttl,
            "proxied": proxied,
        }

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any] | None:
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
