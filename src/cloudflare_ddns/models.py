"""
Data models for Cloudflare DDNS.

This module defines the core data structures used throughout the application:
record types and address families, the configured domain records, the
per-cycle public address and remote record state, and the cycle report.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator
from pydantic_core import PydanticCustomError

if TYPE_CHECKING:
    from typing import Self


class AddressFamily(StrEnum):
    """
    IP address families.

    Attributes
    ----------
    V4 : str
        IPv4.
    V6 : str
        IPv6.
    """

    V4 = "v4"
    V6 = "v6"

    @property
    def record_type(self) -> RecordType:
        """Get the DNS record type published for this family."""
        return RecordType.A if self is AddressFamily.V4 else RecordType.AAAA


class RecordType(StrEnum):
    """
    Supported DNS record types.

    Attributes
    ----------
    A : str
        IPv4 address record.
    AAAA : str
        IPv6 address record.
    """

    A = "A"
    AAAA = "AAAA"

    @property
    def family(self) -> AddressFamily:
        """Get the address family this record type carries."""
        return AddressFamily.V4 if self is RecordType.A else AddressFamily.V6


# Cloudflare treats a TTL of 1 as "automatic"
AUTO_TTL = 1


class DomainRecord(BaseModel):
    """
    One desired DNS record to keep in sync.

    The domain name is either given literally (`name`) or read from a file at
    runtime (`name_file`), for deployments where the domain itself is a
    secret. `name_file` takes precedence when both are set.

    Attributes
    ----------
    name : str | None
        Fully qualified domain name.
    name_file : str | None
        Path to a file containing the fully qualified domain name.
    record_type : RecordType
        The record type (A or AAAA).
    proxied : bool
        Whether Cloudflare should proxy the record (orange cloud).
    ttl : int
        Time to live in seconds; 1 means automatic.
    """

    name: str | None = Field(default=None, min_length=1)
    name_file: str | None = Field(default=None, min_length=1)
    record_type: RecordType = Field(default=RecordType.A, alias="type")
    proxied: bool = True
    ttl: int = Field(default=AUTO_TTL, ge=1, le=86400)

    model_config = {"populate_by_name": True, "frozen": True}

    @model_validator(mode="after")
    def check_name_source(self) -> Self:
        """
        Validate that the record has a name or a name file.

        Returns
        -------
        Self
            The validated model.

        Raises
        ------
        PydanticCustomError
            If neither `name` nor `name_file` is set.
        """
        if self.name is None and self.name_file is None:
            err_type = "domain_name_error"
            raise PydanticCustomError(
                err_type,
                'Either "name" or "name_file" must be set',
            )
        return self

    @property
    def family(self) -> AddressFamily:
        """Get the address family this record depends on."""
        return self.record_type.family

    @property
    def label(self) -> str:
        """Get a loggable label that never reveals a secret domain name."""
        if self.name_file is not None:
            return f"<{self.name_file}>"
        return str(self.name)


class PublicAddress(BaseModel):
    """
    The machine's currently observed external address for one family.

    Attributes
    ----------
    family : AddressFamily
        The address family.
    value : str | None
        The address, or None if the lookup failed this cycle.
    """

    family: AddressFamily
    value: str | None = None

    @property
    def resolved(self) -> bool:
        """Whether the lookup succeeded."""
        return self.value is not None


class RemoteRecordState(BaseModel):
    """
    The provider's current view of a (name, type) pair.

    A state with `record_id` None means the provider confirmed that no such
    record exists. A failed query is represented by the absence of a state
    object, never by this model.

    Attributes
    ----------
    record_id : str | None
        Provider-assigned record identifier.
    content : str | None
        The address currently published.
    """

    record_id: str | None = None
    content: str | None = None

    @property
    def exists(self) -> bool:
        """Whether the record exists on the provider."""
        return self.record_id is not None


class RecordAction(StrEnum):
    """Decision taken for one record in one cycle."""

    UNCHANGED = "unchanged"
    CREATE = "create"
    UPDATE = "update"


class Outcome(StrEnum):
    """Result of reconciling one record in one cycle."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


def plan_action(address: str, remote: RemoteRecordState) -> RecordAction:
    """
    Decide what to do with one record.

    Parameters
    ----------
    address : str
        The freshly resolved public address.
    remote : RemoteRecordState
        The provider's current state for the record.

    Returns
    -------
    RecordAction
        UNCHANGED when the published content matches, CREATE when no record
        exists yet, UPDATE otherwise.
    """
    if remote.content == address:
        return RecordAction.UNCHANGED
    if not remote.exists:
        return RecordAction.CREATE
    return RecordAction.UPDATE


class RecordOutcome(BaseModel):
    """
    Outcome of reconciling one record.

    Attributes
    ----------
    name : str
        The record name (or its label when the name could not be resolved).
    type : RecordType
        The record type.
    outcome : Outcome
        What happened.
    message : str
        Human-readable message.
    content : str | None
        The public address the record was reconciled against.
    previous_value : str | None
        The previously published content (updates only).
    """

    name: str
    type: RecordType
    outcome: Outcome
    message: str
    content: str | None = None
    previous_value: str | None = None


class CycleReport(BaseModel):
    """
    Summary of one reconciliation cycle.

    Attributes
    ----------
    started_at : datetime
        When the cycle started.
    finished_at : datetime | None
        When the cycle finished.
    addresses : dict[AddressFamily, str | None]
        Resolved address per enabled family (None if the lookup failed).
    records : list[RecordOutcome]
        Per-record outcomes.
    """

    started_at: datetime
    finished_at: datetime | None = None
    addresses: dict[AddressFamily, str | None] = Field(default_factory=dict)
    records: list[RecordOutcome] = Field(default_factory=list)

    @property
    def writes(self) -> int:
        """Number of create/update calls that succeeded."""
        return sum(
            1 for r in self.records if r.outcome in {Outcome.CREATED, Outcome.UPDATED}
        )

    @property
    def failures(self) -> int:
        """Number of records whose write failed."""
        return sum(1 for r in self.records if r.outcome is Outcome.FAILED)

    def count(self, outcome: Outcome) -> int:
        """Count records with the given outcome."""
        return sum(1 for r in self.records if r.outcome is outcome)
