"""Shared fixtures: HTTP mocking, secret files and configuration builders."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pytest
import respx

from cloudflare_ddns.config import dict_to_config
from cloudflare_ddns.logging_config import PACKAGE_LOGGER

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from cloudflare_ddns.config import Config


CF_BASE = "https://api.cloudflare.com/client/v4"
ZONE_ID = "zone123"
API_TOKEN = "cf-test-token-0123456789"
IPV4_URL = "https://ipv4.icanhazip.com"
IPV6_URL = "https://ipv6.icanhazip.com"
RECORDS_URL = f"{CF_BASE}/zones/{ZONE_ID}/dns_records"


def cf_response(result: Any, success: bool = True) -> dict[str, Any]:
    """Build a Cloudflare-shaped JSON response body."""
    return {"success": success, "errors": [], "messages": [], "result": result}


def cf_record(
    record_id: str = "rec1",
    name: str = "jf.example.com",
    content: str = "203.0.113.9",
    record_type: str = "A",
) -> dict[str, Any]:
    """Build a Cloudflare DNS record as returned by the list call."""
    return {
        "id": record_id,
        "zone_id": ZONE_ID,
        "name": name,
        "type": record_type,
        "content": content,
        "proxied": True,
        "ttl": 1,
    }


@pytest.fixture
def mock_http() -> Iterator[respx.MockRouter]:
    """Intercept every httpx call; no real network traffic is allowed."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def secrets_dir(tmp_path: Path) -> Path:
    """Directory holding an API token and a zone ID file."""
    directory = tmp_path / "secrets"
    directory.mkdir()
    (directory / "cloudflare-api-token").write_text(f"{API_TOKEN}\n")
    (directory / "cloudflare-zone-id").write_text(f"{ZONE_ID}\n")
    return directory


@pytest.fixture
def make_config(secrets_dir: Path) -> Callable[..., Config]:
    """Factory building a validated Config with working credential files."""

    def _make_config(
        domains: list[dict[str, Any]] | None = None,
        **sections: Any,
    ) -> Config:
        data: dict[str, Any] = {
            "cloudflare": {
                "api_token_file": str(secrets_dir / "cloudflare-api-token"),
                "zone_id_file": str(secrets_dir / "cloudflare-zone-id"),
            },
            "domains": domains or [],
        }
        data.update(sections)
        return dict_to_config(data)

    return _make_config


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo setup_logging so caplog sees package records in every test."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
