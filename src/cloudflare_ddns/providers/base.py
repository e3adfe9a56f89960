"""
Base class for DNS providers.

This module defines the abstract base class that DNS provider implementations
inherit from. The reconciler only talks to providers through this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloudflare_ddns.models import RecordType, RemoteRecordState


class ProviderResult:
    """
    Result of a provider write operation.

    Attributes
    ----------
    success : bool
        Whether the provider reported success.
    action : str | None
        The action taken ("created", "updated").
    message : str
        Human-readable message.
    record_id : str | None
        The record ID from the provider.
    previous_value : str | None
        The previous record value.
    extra : dict[str, str] | None
        Additional metadata (e.g. the "cf-ray" header).
    """

    def __init__(
        self,
        *,
        success: bool,
        message: str,
        action: str | None = None,
        record_id: str | None = None,
        previous_value: str | None = None,
        extra: dict[str, str] | None = None,
    ) -> None:
        """
        Initialize a ProviderResult.

        Parameters
        ----------
        success : bool
            Whether the operation was successful.
        message : str
            Human-readable message.
        action : str | None, optional
            The action taken.
        record_id : str | None, optional
            The record ID.
        previous_value : str | None, optional
            The previous record value.
        extra : dict[str, str] | None, optional
            Additional metadata.
        """
        self.success = success
        self.message = message
        self.action = action
        self.record_id = record_id
        self.previous_value = previous_value
        self.extra = extra

    def __repr__(self) -> str:
        return (
            f"ProviderResult(success={self.success!r}, action={self.action!r}, "
            f"message={self.message!r})"
        )


class BaseDNSProvider(ABC):
    """
    Abstract base class for DNS providers.

    Implementations expose three call shapes: read the record matching
    (name, type), create a record, and update a record by ID.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Get the provider name.

        Returns
        -------
        str
            Provider name identifier.
        """
        ...

    @abstractmethod
    async def fetch_record(
        self,
        name: str,
        record_type: RecordType,
    ) -> RemoteRecordState | None:
        """
        Fetch the provider's current state for a (name, type) pair.

        Parameters
        ----------
        name : str
            Fully qualified domain name.
        record_type : RecordType
            The record type.

        Returns
        -------
        RemoteRecordState | None
            The current state (with `record_id` None if the provider confirmed
            the record does not exist), or None if the query failed.
        """
        ...

    @abstractmethod
    async def create_record(
        self,
        name: str,
        record_type: RecordType,
        content: str,
        ttl: int,
        proxied: bool,
    ) -> ProviderResult:
        """
        Create a DNS record.

        Parameters
        ----------
        name : str
            Fully qualified domain name.
        record_type : RecordType
            The record type.
        content : str
            The address to publish.
        ttl : int
            Time to live (1 = automatic).
        proxied : bool
            Whether the provider proxies the record.

        Returns
        -------
        ProviderResult
            The result of the operation.
        """
        ...

    @abstractmethod
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
        Update an existing DNS record.

        Parameters
        ----------
        record_id : str
            The provider-assigned record ID.
        name : str
            Fully qualified domain name.
        record_type : RecordType
            The record type.
        content : str
            The address to publish.
        ttl : int
            Time to live (1 = automatic).
        proxied : bool
            Whether the provider proxies the record.

        Returns
        -------
        ProviderResult
            The result of the operation.
        """
        ...
