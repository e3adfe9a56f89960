"""
FastAPI status server for Cloudflare DDNS watch mode.

The application lifespan runs the watch loop in the background; the
endpoints expose liveness and the report of the most recent cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from starlette import status as st_status

from cloudflare_ddns.runner import watch

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from cloudflare_ddns.config import Config
    from cloudflare_ddns.credentials import Credentials
    from cloudflare_ddns.models import CycleReport


logger = logging.getLogger(__name__)

# Runtime state (set by the CLI before the server starts)
_config: Config | None = None
_credentials: Credentials | None = None
_last_report: CycleReport | None = None
_watch_task: asyncio.Task[None] | None = None


def set_preloaded_runtime(config: Config, credentials: Credentials) -> None:
    """
    Inject the loaded configuration and credentials into the server module.

    Parameters
    ----------
    config : Config
        The configuration object to use.
    credentials : Credentials
        The loaded Cloudflare credentials.
    """
    global _config, _credentials  # noqa: PLW0603
    _config = config
    _credentials = credentials


def record_report(report: CycleReport) -> None:
    """Remember the report of the most recent cycle."""
    global _last_report  # noqa: PLW0603
    _last_report = report


def get_last_report() -> CycleReport | None:
    """Get the report of the most recent cycle, if any."""
    return _last_report


def _on_watch_done(task: asyncio.Task[None]) -> None:
    """Log the exception that stopped the watch loop."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Watch loop stopped: %s", exc, exc_info=exc)


def watch_failed() -> bool:
    """Whether the watch loop has ended with an exception."""
    task = _watch_task
    if task is None or not task.done() or task.cancelled():
        return False
    return task.exception() is not None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager: runs the watch loop in the background."""
    global _watch_task  # noqa: PLW0603
    if _config is None or _credentials is None:
        msg = "Configuration not loaded"
        raise RuntimeError(msg)

    logger.info(
        'Cloudflare DDNS status server starting on "%s:%d".',
        _config.health.host,
        _config.health.port,
    )
    task = asyncio.create_task(watch(_config, _credentials, record_report))
    task.add_done_callback(_on_watch_done)
    _watch_task = task

    yield

    task.cancel()
    # A failure was already logged by _on_watch_done
    with contextlib.suppress(asyncio.CancelledError, Exception):
        await task
    _watch_task = None
    logger.info("Cloudflare DDNS shutting down.")


app = FastAPI(
    title="Cloudflare DDNS",
    description="Keeps Cloudflare DNS records in sync with the host's public IP",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health() -> Response:
    """Health check endpoint."""
    if watch_failed():
        return JSONResponse(
            status_code=st_status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error"},
        )
    return JSONResponse(content={"status": "ok"})


@app.get("/status")
async def status() -> Response:
    """Report of the most recent reconciliation cycle."""
    report = get_last_report()
    if report is None:
        return JSONResponse(
            status_code=st_status.HTTP_200_OK,
            content={"status": "pending"},
        )
    content = {
        "status": "error" if report.failures else "ok",
        "writes": report.writes,
        "failures": report.failures,
        "report": report.model_dump(mode="json"),
    }
    return JSONResponse(status_code=st_status.HTTP_200_OK, content=content)
