"""
DDNS reconciliation.

One call to `Reconciler.run_cycle()` resolves the public address of every
enabled family, then brings each configured record in line with it:

    resolve name -> fetch remote state -> {unchanged | create | update}

Failures are contained to the smallest unit they affect (one family or one
record) and are never retried within a cycle; the next cycle sees the same
mismatch and tries again.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cloudflare_ddns.credentials import SecretError, resolve_domain_name
from cloudflare_ddns.models import (
    CycleReport,
    Outcome,
    RecordAction,
    RecordOutcome,
    RecordType,
    plan_action,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cloudflare_ddns.addresses import PublicAddressResolver
    from cloudflare_ddns.models import AddressFamily, DomainRecord, PublicAddress
    from cloudflare_ddns.providers.base import BaseDNSProvider


logger = logging.getLogger(__name__)


class Reconciler:
    """
    Reconciles configured DNS records against the current public addresses.

    Records are independent: groups sharing a (name, type) pair run
    sequentially, distinct groups run concurrently up to `concurrency`.
    """

    def __init__(
        self,
        provider: BaseDNSProvider,
        resolver: PublicAddressResolver,
        records: Sequence[DomainRecord],
        families: Sequence[AddressFamily],
        *,
        concurrency: int = 4,
    ) -> None:
        """
        Initialize the reconciler.

        Parameters
        ----------
        provider : BaseDNSProvider
            The DNS provider.
        resolver : PublicAddressResolver
            Public address resolver.
        records : Sequence[DomainRecord]
            The configured records, in configuration order.
        families : Sequence[AddressFamily]
            The enabled address families.
        concurrency : int, optional
            Maximum number of record groups processed at once.
        """
        self._provider = provider
        self._resolver = resolver
        self._records = tuple(records)
        self._families = tuple(families)
        self._concurrency = max(1, concurrency)

    async def run_cycle(self) -> CycleReport:
        """
        Run one reconciliation cycle.

        Returns
        -------
        CycleReport
            Per-record outcomes of this cycle.
        """
        report = CycleReport(started_at=datetime.now(UTC))

        addresses = await self._resolver.resolve_all(self._families)
        report.addresses = {family: addr.value for family, addr in addresses.items()}

        groups: dict[tuple[str, RecordType], list[DomainRecord]] = defaultdict(list)
        for index, record in enumerate(self._records):
            if record.family not in addresses:
                logger.debug(
                    "Ignoring %s record %s: %s is disabled.",
                    record.record_type,
                    record.label,
                    record.family,
                )
                continue

            name = self._resolve_name(record, index, report)
            if name is None:
                continue

            address = addresses[record.family]
            if not address.resolved:
                logger.warning(
                    "Skipping %s record %s: no %s address this cycle.",
                    record.record_type,
                    name,
                    record.family,
                )
                report.records.append(
                    RecordOutcome(
                        name=name,
                        type=record.record_type,
                        outcome=Outcome.SKIPPED,
                        message=f"{record.family} address lookup failed",
                    ),
                )
                continue

            groups[(name, record.record_type)].append(record)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def run_group(
            name: str,
            records: list[DomainRecord],
        ) -> list[RecordOutcome]:
            async with semaphore:
                results = []
                for record in records:
                    address = addresses[record.family]
                    results.append(await self._reconcile_guarded(name, record, address))
                return results

        group_results = await asyncio.gather(
            *(run_group(name, records) for (name, _), records in groups.items()),
        )
        for results in group_results:
            report.records.extend(results)

        report.finished_at = datetime.now(UTC)
        logger.info(
            "DDNS cycle completed: %d unchanged, %d created, %d updated, %d skipped, %d failed.",
            report.count(Outcome.UNCHANGED),
            report.count(Outcome.CREATED),
            report.count(Outcome.UPDATED),
            report.count(Outcome.SKIPPED),
            report.count(Outcome.FAILED),
        )
        return report

    def _resolve_name(
        self,
        record: DomainRecord,
        index: int,
        report: CycleReport,
    ) -> str | None:
        """
        Resolve a record's name, reporting configuration errors.

        Parameters
        ----------
        record : DomainRecord
            The configured record.
        index : int
            Position of the record in the configuration.
        report : CycleReport
            Report to append a skip outcome to on failure.

        Returns
        -------
        str | None
            The domain name, or None if the record must be skipped.
        """
        try:
            name = resolve_domain_name(record, index)
        except SecretError as e:
            logger.error("Skipping %s record %s: %s", record.record_type, record.label, e)
            message = "domain name file is unreadable"
        else:
            if name:
                return name
            logger.error(
                "Skipping %s record %s: domain name is empty (configuration error).",
                record.record_type,
                record.label,
            )
            message = "domain name is empty"

        report.records.append(
            RecordOutcome(
                name=record.label,
                type=record.record_type,
                outcome=Outcome.SKIPPED,
                message=message,
            ),
        )
        return None

    async def _reconcile_guarded(
        self,
        name: str,
        record: DomainRecord,
        address: PublicAddress,
    ) -> RecordOutcome:
        """Reconcile one record, turning unexpected errors into a failure."""
        try:
            return await self.reconcile_record(name, record, address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected error reconciling %s %s", record.record_type, name)
            return RecordOutcome(
                name=name,
                type=record.record_type,
                outcome=Outcome.FAILED,
                message=f"unexpected error: {e}",
                content=address.value,
            )

    async def reconcile_record(
        self,
        name: str,
        record: DomainRecord,
        address: PublicAddress,
    ) -> RecordOutcome:
        """
        Bring one record in line with the public address.

        Parameters
        ----------
        name : str
            The resolved domain name.
        record : DomainRecord
            The configured record.
        address : PublicAddress
            The resolved public address of the record's family.

        Returns
        -------
        RecordOutcome
            What happened to the record.
        """
        record_type = record.record_type
        content = address.value
        if content is None:
            msg = "reconcile_record() needs a resolved address"
            raise ValueError(msg)

        remote = await self._provider.fetch_record(name, record_type)
        if remote is None:
            logger.warning(
                "Skipping %s record %s: could not read current state from %s.",
                record_type,
                name,
                self._provider.name,
            )
            return RecordOutcome(
                name=name,
                type=record_type,
                outcome=Outcome.SKIPPED,
                message="provider read failed",
                content=content,
            )

        action = plan_action(content, remote)

        if action is RecordAction.UNCHANGED:
            logger.info("%s record for %s unchanged (%s).", record_type, name, content)
            return RecordOutcome(
                name=name,
                type=record_type,
                outcome=Outcome.UNCHANGED,
                message="record is up to date",
                content=content,
            )

        if action is RecordAction.CREATE:
            logger.info("Creating %s record for %s with %s.", record_type, name, content)
            result = await self._provider.create_record(
                name, record_type, content, record.ttl, record.proxied,
            )
            success_outcome = Outcome.CREATED
        else:
            logger.info(
                "Updating %s record for %s: %s -> %s.",
                record_type,
                name,
                remote.content,
                content,
            )
            result = await self._provider.update_record(
                str(remote.record_id),
                name,
                record_type,
                content,
                record.ttl,
                record.proxied,
            )
            success_outcome = Outcome.UPDATED

        if not result.success:
            logger.error(
                "Failed to reconcile %s record for %s: %s",
                record_type,
                name,
                result.message,
            )
            return RecordOutcome(
                name=name,
                type=record_type,
                outcome=Outcome.FAILED,
                message=result.message,
                content=content,
                previous_value=remote.content,
            )

        return RecordOutcome(
            name=name,
            type=record_type,
            outcome=success_outcome,
            message=result.message,
            content=content,
            previous_value=remote.content,
        )
