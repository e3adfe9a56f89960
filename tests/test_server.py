"""Tests for the watch-mode status server."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import API_TOKEN, ZONE_ID
from fastapi.testclient import TestClient
from pydantic import SecretStr
from starlette import status as st_status

from cloudflare_ddns import server
from cloudflare_ddns.credentials import Credentials
from cloudflare_ddns.models import CycleReport, Outcome, RecordOutcome, RecordType
from cloudflare_ddns.server import app, get_last_report, record_report, set_preloaded_runtime

CREDENTIALS = Credentials(api_token=SecretStr(API_TOKEN), zone_id=ZONE_ID)


def make_report(*outcomes: Outcome) -> CycleReport:
    report = CycleReport(started_at=datetime.now(UTC))
    report.records.extend(
        RecordOutcome(name=f"r{i}.example.com", type=RecordType.A, outcome=o, message="")
        for i, o in enumerate(outcomes)
    )
    return report


@pytest.fixture(autouse=True)
def reset_runtime(monkeypatch):
    monkeypatch.setattr(server, "_config", None)
    monkeypatch.setattr(server, "_credentials", None)
    monkeypatch.setattr(server, "_last_report", None)
    monkeypatch.setattr(server, "_watch_task", None)


@pytest.fixture
def client():
    """Create a test client without running the lifespan."""
    return TestClient(app)


class TestEndpoints:
    """Tests for /health and /status."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == st_status.HTTP_200_OK
        assert response.json() == {"status": "ok"}

    def test_status_pending(self, client):
        response = client.get("/status")
        assert response.status_code == st_status.HTTP_200_OK
        assert response.json() == {"status": "pending"}

    def test_status_ok(self, client):
        record_report(make_report(Outcome.CREATED, Outcome.UNCHANGED))
        body = client.get("/status").json()
        assert body["status"] == "ok"
        assert body["writes"] == 1
        assert body["failures"] == 0
        assert body["report"]["records"][0]["outcome"] == "created"

    def test_status_error(self, client):
        record_report(make_report(Outcome.FAILED))
        body = client.get("/status").json()
        assert body["status"] == "error"
        assert body["failures"] == 1


class TestLifespan:
    """Tests for the application lifespan."""

    def test_requires_runtime(self):
        with pytest.raises(RuntimeError, match="Configuration not loaded"), TestClient(app):
            pass

    def test_runs_watch_loop(self, monkeypatch, make_config):
        started = []

        async def fake_watch(config, credentials, on_report):
            started.append(config)
            on_report(make_report(Outcome.UNCHANGED))
            await asyncio.Event().wait()

        monkeypatch.setattr(server, "watch", fake_watch)
        config = make_config()
        set_preloaded_runtime(config, CREDENTIALS)

        with TestClient(app) as client:
            for _ in range(50):
                if get_last_report() is not None:
                    break
                client.get("/health")
            body = client.get("/status").json()

        assert started == [config]
        assert body["status"] == "ok"

    def test_failed_watch_loop_is_reported(self, monkeypatch, make_config, caplog):
        async def broken_watch(config, credentials, on_report):
            msg = "lookup client exploded"
            raise RuntimeError(msg)

        monkeypatch.setattr(server, "watch", broken_watch)
        set_preloaded_runtime(make_config(), CREDENTIALS)

        with TestClient(app) as client:
            for _ in range(50):
                response = client.get("/health")
                if response.status_code != st_status.HTTP_200_OK:
                    break
            assert response.status_code == st_status.HTTP_503_SERVICE_UNAVAILABLE
            assert response.json() == {"status": "error"}

        assert "Watch loop stopped: lookup client exploded" in caplog.text
