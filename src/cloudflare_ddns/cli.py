"""
CLI entry point for Cloudflare DDNS.

By default one reconciliation cycle runs and the process exits 0, whatever
happened to individual records. Only configuration and credential errors
exit non-zero.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import uvicorn

from cloudflare_ddns.config import (
    ConfigValidationError,
    load_config,
    parse_args,
    resolve_config_path,
)
from cloudflare_ddns.credentials import SecretError, check_name_sources, load_credentials
from cloudflare_ddns.logging_config import build_uvicorn_log_config, setup_logging
from cloudflare_ddns.runner import run_once, watch
from cloudflare_ddns.server import set_preloaded_runtime
from cloudflare_ddns.units import build_units, write_units

if TYPE_CHECKING:
    import argparse
    from collections.abc import Coroutine
    from typing import Any

    from cloudflare_ddns.config import Config


EXIT_OK = 0
EXIT_CONFIG_ERROR = 1


def _run_cancellable(coro: Coroutine[Any, Any, Any]) -> int:
    """
    Run a coroutine, cancelling it on SIGTERM or SIGINT.

    In-flight HTTP calls are aborted by the cancellation; provider writes that
    already completed are kept.

    Returns
    -------
    int
        0 on completion, 128 + signal number when interrupted.
    """

    async def runner() -> int:
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        received: list[int] = []

        def on_signal(signum: int) -> None:
            received.append(signum)
            task.cancel()

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, on_signal, signum)
        try:
            await task
        except asyncio.CancelledError:
            if not received:
                raise
            return 128 + received[0]
        finally:
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(signum)
        return EXIT_OK

    return asyncio.run(runner())


def _render_units(args: argparse.Namespace, config: Config) -> int:
    config_path = resolve_config_path(args) or Path("config.toml")
    exec_path = args.exec_path or sys.argv[0]
    write_units(args.render_units, build_units(config, config_path, exec_path))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """
    Run Cloudflare DDNS.

    Parse command-line arguments, load configuration and credentials, then
    run one cycle, watch, or render systemd units.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    int
        Process exit status.
    """
    args = parse_args(argv)
    try:
        config = load_config(args)
    except ConfigValidationError as e:
        print(e, file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG_ERROR

    setup_logging(config.logging)

    if args.render_units is not None:
        return _render_units(args, config)

    try:
        credentials = load_credentials(config)
        check_name_sources(config.domains)
    except SecretError as e:
        print(f"Configuration error: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG_ERROR

    if not args.watch:
        return _run_cancellable(run_once(config, credentials))

    if not config.health.enabled:
        return _run_cancellable(watch(config, credentials))

    # The status server's lifespan runs the watch loop
    set_preloaded_runtime(config, credentials)
    uvicorn.run(
        "cloudflare_ddns.server:app",
        host=config.health.host,
        port=config.health.port,
        log_level=config.logging.level.lower(),
        access_log=False,
        log_config=build_uvicorn_log_config(config.logging),
    )
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
