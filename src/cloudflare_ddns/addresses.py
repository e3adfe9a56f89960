"""
Public address lookup.

This module resolves the host's current public IPv4/IPv6 address by asking an
"echo my IP" HTTP endpoint that returns the caller's address as plain text.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import TYPE_CHECKING

import httpx

from cloudflare_ddns.models import AddressFamily, PublicAddress

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from cloudflare_ddns.config import Config


logger = logging.getLogger(__name__)


class PublicAddressResolver:
    """
    Resolves public addresses, one endpoint per address family.

    Lookup failures never raise: a failed family yields a `PublicAddress`
    whose `value` is None, so the caller can skip just that family's records.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoints: Mapping[AddressFamily, str],
        timeout: float,
    ) -> None:
        """
        Initialize the resolver.

        Parameters
        ----------
        client : httpx.AsyncClient
            HTTP client, owned by the caller.
        endpoints : Mapping[AddressFamily, str]
            Lookup URL per address family.
        timeout : float
            Timeout in seconds for each lookup.
        """
        self._client = client
        self._endpoints = dict(endpoints)
        self._timeout = timeout

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, config: Config) -> PublicAddressResolver:
        """Build a resolver from the application configuration."""
        return cls(
            client,
            {family: config.family_config(family).provider for family in AddressFamily},
            config.lookup.timeout,
        )

    async def resolve(self, family: AddressFamily) -> PublicAddress:
        """
        Resolve the public address of one family.

        Parameters
        ----------
        family : AddressFamily
            The address family.

        Returns
        -------
        PublicAddress
            The address, with `value` None if the lookup failed.
        """
        url = self._endpoints[family]

        try:
            response = await self._client.get(url, timeout=self._timeout)
        except httpx.TimeoutException:
            logger.warning("[lookup] %s lookup timed out: %s", family, url)
            return PublicAddress(family=family)
        except httpx.RequestError as e:
            logger.warning("[lookup] %s lookup failed: '%s'", family, e)
            return PublicAddress(family=family)
        except httpx.InvalidURL as e:
            logger.warning("[lookup] %s lookup URL is invalid: '%s'", family, e)
            return PublicAddress(family=family)

        logger.debug("[lookup] GET %s -> %d", url, response.status_code)

        if not response.is_success:
            logger.warning(
                "[lookup] %s lookup returned HTTP %d: %s",
                family,
                response.status_code,
                url,
            )
            return PublicAddress(family=family)

        value = response.text.strip()
        if not value:
            logger.warning("[lookup] %s lookup returned an empty body: %s", family, url)
            return PublicAddress(family=family)

        try:
            address = ipaddress.ip_address(value)
        except ValueError:
            logger.warning(
                "[lookup] %s lookup returned an unusable body: %r", family, value[:64],
            )
            return PublicAddress(family=family)

        expected_version = 4 if family is AddressFamily.V4 else 6
        if address.version != expected_version:
            logger.warning(
                "[lookup] %s lookup returned an IPv%d address: %s",
                family,
                address.version,
                value,
            )
            return PublicAddress(family=family)

        logger.info("Current %s address: %s", family, address.compressed)
        return PublicAddress(family=family, value=address.compressed)

    async def resolve_all(
        self,
        families: Iterable[AddressFamily],
    ) -> dict[AddressFamily, PublicAddress]:
        """
        Resolve several families concurrently.

        Parameters
        ----------
        families : Iterable[AddressFamily]
            The enabled address families.

        Returns
        -------
        dict[AddressFamily, PublicAddress]
            One entry per requested family.
        """
        wanted = list(families)
        results = await asyncio.gather(*(self.resolve(f) for f in wanted))
        return dict(zip(wanted, results, strict=True))
