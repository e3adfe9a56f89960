"""Tests for the one-shot and watch run modes."""

from __future__ import annotations

import random

import httpx
import pytest
from conftest import API_TOKEN, IPV4_URL, RECORDS_URL, ZONE_ID, cf_record, cf_response
from pydantic import SecretStr

from cloudflare_ddns.credentials import Credentials
from cloudflare_ddns.models import Outcome
from cloudflare_ddns.runner import build_reconciler, next_delay, watch

CREDENTIALS = Credentials(api_token=SecretStr(API_TOKEN), zone_id=ZONE_ID)


@pytest.fixture
def cloudflare_in_sync(mock_http):
    mock_http.get(IPV4_URL).mock(return_value=httpx.Response(200, text="203.0.113.9"))
    return mock_http.get(RECORDS_URL).mock(
        return_value=httpx.Response(200, json=cf_response([cf_record()])),
    )


class TestNextDelay:
    """Tests for next_delay function."""

    def test_without_jitter(self, make_config):
        config = make_config(schedule={"interval": "10m", "randomized_delay": "0s"})
        assert next_delay(config) == 600

    def test_jitter_is_bounded(self, make_config):
        config = make_config(schedule={"interval": "5m", "randomized_delay": "30s"})
        rng = random.Random(42)
        delays = [next_delay(config, rng) for _ in range(50)]
        assert all(300 <= d <= 330 for d in delays)


class TestBuildReconciler:
    """Tests for build_reconciler function."""

    async def test_uses_configured_families(self, make_config):
        config = make_config(ipv6={"enabled": True}, schedule={"concurrency": 2})
        async with httpx.AsyncClient() as client:
            reconciler = build_reconciler(config, CREDENTIALS, client)
        assert reconciler._concurrency == 2
        assert len(reconciler._families) == 2


class TestWatch:
    """Tests for watch function."""

    async def test_runs_cycles_with_delays(self, make_config, cloudflare_in_sync):
        config = make_config(
            domains=[{"name": "jf.example.com"}],
            schedule={"interval": "5m", "boot_delay": "1m", "randomized_delay": "0s"},
        )
        delays: list[float] = []
        reports = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        await watch(config, CREDENTIALS, reports.append, max_cycles=3, sleep=fake_sleep)

        assert delays == [60, 300, 300]
        assert len(reports) == 3
        assert all(r.records[0].outcome is Outcome.UNCHANGED for r in reports)
        assert cloudflare_in_sync.call_count == 3

    async def test_calendar_schedule_warns(self, make_config, cloudflare_in_sync, caplog):
        config = make_config(schedule={"on_calendar": "hourly", "randomized_delay": "0s"})

        async def fake_sleep(seconds: float) -> None:
            return None

        await watch(config, CREDENTIALS, max_cycles=1, sleep=fake_sleep)
        assert "hourly" in caplog.text
