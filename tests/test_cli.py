"""Tests for the command-line entry point."""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path

import httpx
import pytest
from conftest import IPV4_URL, RECORDS_URL, cf_record, cf_response

from cloudflare_ddns.cli import EXIT_CONFIG_ERROR, EXIT_OK, _run_cancellable, main


@pytest.fixture
def config_file(tmp_path: Path, secrets_dir: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        f"""
[cloudflare]
api_token_file = "{secrets_dir / 'cloudflare-api-token'}"
zone_id_file = "{secrets_dir / 'cloudflare-zone-id'}"

[[domains]]
name = "jf.example.com"
type = "A"
proxied = true
ttl = 1
""",
    )
    return path


@pytest.fixture(autouse=True)
def no_credentials_directory(monkeypatch):
    monkeypatch.delenv("CREDENTIALS_DIRECTORY", raising=False)


class TestMain:
    """Tests for main function."""

    def test_one_shot_run(self, mock_http, config_file: Path):
        mock_http.get(IPV4_URL).mock(return_value=httpx.Response(200, text="203.0.113.9"))
        mock_http.get(RECORDS_URL).mock(return_value=httpx.Response(200, json=cf_response([])))
        create = mock_http.post(RECORDS_URL).mock(
            return_value=httpx.Response(200, json=cf_response(cf_record())),
        )

        assert main(["--config", str(config_file)]) == EXIT_OK
        assert create.call_count == 1

    def test_record_failures_still_exit_zero(self, mock_http, config_file: Path):
        mock_http.get(IPV4_URL).mock(side_effect=httpx.ConnectError("offline"))

        assert main(["--config", str(config_file)]) == EXIT_OK

    def test_invalid_config(self, tmp_path: Path, capsys):
        path = tmp_path / "config.toml"
        path.write_text('[[domains]]\nname = "jf.example.com"\ntype = "MX"\n')

        assert main(["--config", str(path)]) == EXIT_CONFIG_ERROR
        assert "domains.0.type" in capsys.readouterr().err

    def test_unreadable_token(self, config_file: Path, secrets_dir: Path, capsys):
        (secrets_dir / "cloudflare-api-token").unlink()

        assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR
        assert "Configuration error" in capsys.readouterr().err

    def test_empty_zone_id(self, config_file: Path, secrets_dir: Path):
        (secrets_dir / "cloudflare-zone-id").write_text("\n")

        assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR

    def test_unreadable_name_file(self, tmp_path: Path, config_file: Path, capsys):
        config_file.write_text(
            config_file.read_text() + f'\n[[domains]]\nname_file = "{tmp_path / "missing"}"\n',
        )

        assert main(["--config", str(config_file)]) == EXIT_CONFIG_ERROR
        assert "missing" in capsys.readouterr().err

    def test_render_units(self, mock_http, tmp_path: Path, config_file: Path):
        target = tmp_path / "units"

        code = main(
            [
                "--config",
                str(config_file),
                "--render-units",
                str(target),
                "--exec-path",
                "/usr/local/bin/cloudflare-ddns",
            ],
        )

        assert code == EXIT_OK
        service = (target / "cloudflare-ddns.service").read_text()
        assert "ExecStart=/usr/local/bin/cloudflare-ddns --config" in service
        assert (target / "cloudflare-ddns.timer").exists()
        assert not mock_http.calls


class TestRunCancellable:
    """Tests for signal handling around a run."""

    def test_completed_run_exits_zero(self):
        async def quick() -> None:
            await asyncio.sleep(0)

        assert _run_cancellable(quick()) == EXIT_OK

    @pytest.mark.parametrize(
        ("signum", "expected"),
        [(signal.SIGTERM, 143), (signal.SIGINT, 130)],
    )
    def test_signal_cancels_run(self, signum: int, expected: int):
        reached_end = []

        async def slow() -> None:
            asyncio.get_running_loop().call_later(0.05, os.kill, os.getpid(), signum)
            await asyncio.sleep(30)
            reached_end.append(True)

        assert _run_cancellable(slow()) == expected
        assert reached_end == []
