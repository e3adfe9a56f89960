"""
systemd unit rendering.

Builds the oneshot service and the timer that trigger one reconciliation per
interval. Credentials are referenced by path through `LoadCredential=` and are
never embedded in the rendered files.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from cloudflare_ddns.credentials import (
    API_TOKEN_CREDENTIAL,
    ZONE_ID_CREDENTIAL,
    domain_credential_name,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Final

    from cloudflare_ddns.config import Config


SERVICE_NAME: Final[str] = "cloudflare-ddns"

# Unit files carry no secrets
UNIT_FILE_MODE: Final[int] = 0o644

# Parent of the directories managed by LogsDirectory=
LOGS_ROOT: Final[Path] = Path("/var/log")

_HARDENING: Final[tuple[tuple[str, str], ...]] = (
    ("NoNewPrivileges", "true"),
    ("PrivateTmp", "true"),
    ("ProtectSystem", "strict"),
    ("ProtectHome", "true"),
    ("ProtectKernelTunables", "true"),
    ("ProtectKernelModules", "true"),
    ("ProtectControlGroups", "true"),
    ("RestrictSUIDSGID", "true"),
    ("RestrictNamespaces", "true"),
    ("LockPersonality", "true"),
    ("MemoryDenyWriteExecute", "true"),
    ("RestrictRealtime", "true"),
    ("PrivateDevices", "true"),
)


logger = logging.getLogger(__name__)


@dataclass
class UnitFile:
    """
    A systemd unit file.

    Sections keep their insertion order and may repeat a key
    (e.g. several `LoadCredential=` lines).
    """

    filename: str
    sections: dict[str, list[tuple[str, str]]] = field(default_factory=dict)

    def add(self, section: str, key: str, value: str) -> None:
        """Append a `key=value` line to a section."""
        self.sections.setdefault(section, []).append((key, value))

    def get(self, section: str, key: str) -> list[str]:
        """Get every value of a key in a section."""
        return [v for k, v in self.sections.get(section, []) if k == key]

    def render(self) -> str:
        """Render the unit file as text."""
        blocks = []
        for section, entries in self.sections.items():
            lines = [f"[{section}]"]
            lines.extend(f"{key}={value}" for key, value in entries)
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n"


def _log_directory_setting(log_dir: Path) -> tuple[str, str]:
    """
    Get the setting that makes the log directory writable.

    Directories below /var/log are created and owned by the dynamic user
    through `LogsDirectory=`; any other directory is only unlocked with
    `ReadWritePaths=`.
    """
    try:
        relative = log_dir.relative_to(LOGS_ROOT)
    except ValueError:
        return "ReadWritePaths", str(log_dir)
    if not relative.parts:
        return "ReadWritePaths", str(log_dir)
    return "LogsDirectory", relative.as_posix()


def build_service_unit(
    config: Config,
    config_path: Path,
    exec_path: str,
) -> UnitFile:
    """
    Build the oneshot service that runs one reconciliation cycle.

    Parameters
    ----------
    config : Config
        Application configuration.
    config_path : Path
        Configuration file the service is started with.
    exec_path : str
        The `cloudflare-ddns` executable.

    Returns
    -------
    UnitFile
        The service unit.
    """
    unit = UnitFile(f"{SERVICE_NAME}.service")
    unit.add("Unit", "Description", "Cloudflare DDNS updater")
    unit.add("Unit", "After", "network-online.target")
    unit.add("Unit", "Wants", "network-online.target")

    unit.add("Service", "Type", "oneshot")
    command = shlex.join([exec_path, "--config", str(config_path.resolve())])
    unit.add("Service", "ExecStart", command)
    unit.add("Service", "DynamicUser", "true")
    for key, value in _HARDENING:
        unit.add("Service", key, value)
    unit.add(
        "Service",
        "LoadCredential",
        f"{API_TOKEN_CREDENTIAL}:{config.cloudflare.api_token_file}",
    )
    unit.add(
        "Service",
        "LoadCredential",
        f"{ZONE_ID_CREDENTIAL}:{config.cloudflare.zone_id_file}",
    )
    for index, record in enumerate(config.domains):
        if record.name_file is not None:
            unit.add(
                "Service",
                "LoadCredential",
                f"{domain_credential_name(index)}:{record.name_file}",
            )
    if config.logging.file_enabled:
        key, value = _log_directory_setting(config.logging.file_path_as_path.parent)
        unit.add("Service", key, value)

    unit.add("Install", "WantedBy", "multi-user.target")
    return unit


def build_timer_unit(config: Config) -> UnitFile:
    """
    Build the timer that triggers the service.

    Parameters
    ----------
    config : Config
        Application configuration.

    Returns
    -------
    UnitFile
        The timer unit.
    """
    schedule = config.schedule
    unit = UnitFile(f"{SERVICE_NAME}.timer")
    unit.add("Unit", "Description", "Cloudflare DDNS update timer")

    if schedule.on_calendar:
        unit.add("Timer", "OnCalendar", schedule.on_calendar)
    else:
        unit.add("Timer", "OnUnitActiveSec", schedule.interval)
    unit.add("Timer", "OnBootSec", schedule.boot_delay)
    unit.add("Timer", "RandomizedDelaySec", schedule.randomized_delay)
    unit.add("Timer", "Persistent", "true")

    unit.add("Install", "WantedBy", "timers.target")
    return unit


def build_units(config: Config, config_path: Path, exec_path: str) -> list[UnitFile]:
    """Build the service and timer units."""
    return [
        build_service_unit(config, config_path, exec_path),
        build_timer_unit(config),
    ]


def write_units(directory: Path, units: Iterable[UnitFile]) -> list[Path]:
    """
    Write unit files into a directory.

    Parameters
    ----------
    directory : Path
        Target directory (created if missing).
    units : Iterable[UnitFile]
        Units to write.

    Returns
    -------
    list[Path]
        The written files.
    """
    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for unit in units:
        path = directory / unit.filename
        path.write_text(unit.render(), encoding="utf-8")
        path.chmod(UNIT_FILE_MODE)
        logger.info('Wrote "%s".', path)
        written.append(path)
    return written
