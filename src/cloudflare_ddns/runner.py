"""
Run modes for Cloudflare DDNS.

`run_once()` executes a single reconciliation cycle, the shape expected by an
external timer. `watch()` is the in-process equivalent of that timer for hosts
without systemd: a boot delay, then one cycle per interval plus random jitter.
Cycles never overlap because the loop awaits each one before sleeping.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING

import httpx

from cloudflare_ddns.addresses import PublicAddressResolver
from cloudflare_ddns.providers.cloudflare import CloudFlareProvider
from cloudflare_ddns.reconciler import Reconciler

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cloudflare_ddns.config import Config
    from cloudflare_ddns.credentials import Credentials
    from cloudflare_ddns.models import CycleReport


logger = logging.getLogger(__name__)


def build_reconciler(
    config: Config,
    credentials: Credentials,
    client: httpx.AsyncClient,
) -> Reconciler:
    """
    Assemble a reconciler from configuration and credentials.

    Parameters
    ----------
    config : Config
        Application configuration.
    credentials : Credentials
        Cloudflare credentials.
    client : httpx.AsyncClient
        Shared HTTP client.

    Returns
    -------
    Reconciler
        A ready-to-run reconciler.
    """
    provider = CloudFlareProvider(
        credentials.api_token.get_secret_value(),
        credentials.zone_id,
        client,
        api_base=config.cloudflare.api_base,
        timeout=config.cloudflare.timeout,
    )
    resolver = PublicAddressResolver.from_config(client, config)
    return Reconciler(
        provider,
        resolver,
        config.domains,
        config.enabled_families,
        concurrency=config.schedule.concurrency,
    )


async def run_once(config: Config, credentials: Credentials) -> CycleReport:
    """
    Run a single reconciliation cycle.

    Parameters
    ----------
    config : Config
        Application configuration.
    credentials : Credentials
        Cloudflare credentials.

    Returns
    -------
    CycleReport
        The cycle report.
    """
    async with httpx.AsyncClient() as client:
        reconciler = build_reconciler(config, credentials, client)
        return await reconciler.run_cycle()


def next_delay(config: Config, rng: random.Random | None = None) -> float:
    """
    Seconds to wait before the next cycle.

    Parameters
    ----------
    config : Config
        Application configuration.
    rng : random.Random | None, optional
        Random source for the jitter.

    Returns
    -------
    float
        The interval plus a jitter in [0, randomized_delay].
    """
    jitter = (rng or random).uniform(0, config.schedule.randomized_delay_seconds)
    return config.schedule.interval_seconds + jitter


async def watch(
    config: Config,
    credentials: Credentials,
    on_report: Callable[[CycleReport], None] | None = None,
    *,
    max_cycles: int | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> None:
    """
    Reconcile repeatedly until cancelled.

    Parameters
    ----------
    config : Config
        Application configuration.
    credentials : Credentials
        Cloudflare credentials.
    on_report : Callable[[CycleReport], None] | None, optional
        Called with each cycle report.
    max_cycles : int | None, optional
        Stop after this many cycles (None = run forever).
    sleep : Callable[[float], Awaitable[object]], optional
        Awaitable sleep function.
    """
    if config.schedule.on_calendar:
        logger.warning(
            'Calendar schedule "%s" is only used by the systemd timer; '
            'watch mode runs every "%s".',
            config.schedule.on_calendar,
            config.schedule.interval,
        )

    boot_delay = config.schedule.boot_delay_seconds + random.uniform(
        0, config.schedule.randomized_delay_seconds,
    )
    logger.info("Watch mode: first cycle in %.0fs.", boot_delay)
    await sleep(boot_delay)

    cycles = 0
    async with httpx.AsyncClient() as client:
        reconciler = build_reconciler(config, credentials, client)
        while True:
            report = await reconciler.run_cycle()
            cycles += 1
            if on_report is not None:
                on_report(report)
            if max_cycles is not None and cycles >= max_cycles:
                break
            delay = next_delay(config)
            logger.debug("Next cycle in %.0fs.", delay)
            await sleep(delay)
