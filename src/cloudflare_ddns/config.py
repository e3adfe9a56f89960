"""
Configuration management for Cloudflare DDNS.

This module handles loading and validating configuration from TOML files
and command-line arguments. Configuration priority (high to low):
1. Command-line arguments
2. Configuration file
3. Default values
"""

from __future__ import annotations

import argparse
import copy
import logging
import re
import sys
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from cloudflare_ddns.logging_config import DATE_FORMAT, LOG_FORMAT
from cloudflare_ddns.models import AddressFamily, DomainRecord
from cloudflare_ddns.providers.cloudflare import CF_API_BASE, HTTP_TIMEOUT

if TYPE_CHECKING:
    from typing import Any, Final, Self

# Configure basic logging for early startup messages.
# Log messages during config loading (before "setup_logging()" is called) go
# to stderr with the same format; "setup_logging()" reconfigures the
# "cloudflare_ddns" logger with full settings later.
logger_basic = logging.getLogger(__name__)
logger_basic.setLevel(logging.DEBUG)
handler = logging.StreamHandler()
formatter = logging.Formatter(
    fmt=LOG_FORMAT,
    datefmt=DATE_FORMAT,
)
handler.setFormatter(formatter)
logger_basic.addHandler(handler)
logger_basic.propagate = False


DEFAULT_IPV4_PROVIDER: Final[str] = "https://ipv4.icanhazip.com"
DEFAULT_IPV6_PROVIDER: Final[str] = "https://ipv6.icanhazip.com"

# Upper bounds for network calls
MAX_LOOKUP_TIMEOUT: Final[float] = 10.0
MAX_API_TIMEOUT: Final[float] = HTTP_TIMEOUT


class ConfigValidationError(Exception):
    """
    Exception raised when configuration validation fails.

    This exception is raised when the TOML configuration contains
    invalid types or values.

    Attributes
    ----------
    message : str
        Human-readable error message describing the validation failures.
    config_path : Path | None
        Path to the configuration file that failed validation.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        """
        Initialize ConfigValidationError.

        Parameters
        ----------
        message : str
            Human-readable error message.
        config_path : Path | None, optional
            Path to the configuration file.
        """
        self.config_path = config_path
        super().__init__(message)


# systemd time span units, in seconds
_TIMESPAN_UNITS: Final[dict[str, float]] = {
    "us": 1e-6,
    "usec": 1e-6,
    "ms": 1e-3,
    "msec": 1e-3,
    "": 1.0,
    "s": 1.0,
    "sec": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "days": 86400.0,
    "w": 604800.0,
    "week": 604800.0,
    "weeks": 604800.0,
}

_TIMESPAN_PART: Final[re.Pattern[str]] = re.compile(r"\s*(\d+(?:\.\d+)?)\s*([a-z]*)")


def parse_timespan(value: str) -> float:
    """
    Parse a systemd-style time span into seconds.

    Parameters
    ----------
    value : str
        Time span such as "5m", "30s", "1h 30min" or "90".

    Returns
    -------
    float
        Number of seconds.

    Raises
    ------
    ValueError
        If the value is empty or contains an unknown unit.
    """
    text = value.strip().lower()
    if not text:
        msg = "empty time span"
        raise ValueError(msg)

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _TIMESPAN_PART.match(text, pos)
        if match is None or match.end() == pos:
            msg = f'invalid time span "{value}"'
            raise ValueError(msg)
        number, unit = match.groups()
        if unit not in _TIMESPAN_UNITS:
            msg = f'unknown time unit "{unit}" in "{value}"'
            raise ValueError(msg)
        total += float(number) * _TIMESPAN_UNITS[unit]
        pos = match.end()
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return total


# Configuration models (Pydantic with type validation and coercion)


def _check_http_url(value: str) -> str:
    """
    Validate an http(s) URL.

    Raises
    ------
    PydanticCustomError
        If httpx cannot parse the URL or it has no http(s) scheme and host.
    """
    err_type = "url_error"
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise PydanticCustomError(err_type, "Invalid URL: {error}", {"error": str(e)}) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise PydanticCustomError(
            err_type, 'Expected an http(s) URL, got "{url}"', {"url": value},
        )
    return value


class CloudflareConfig(BaseModel):
    """
    Cloudflare API configuration.

    Attributes
    ----------
    api_token_file : str
        Path to the file containing the API token (Zone:DNS:Edit).
    zone_id_file : str
        Path to the file containing the zone identifier.
    api_base : str
        Base URL of the Cloudflare v4 API.
    timeout : float
        Timeout in seconds for each API call.
    """

    api_token_file: str = ""
    zone_id_file: str = ""
    api_base: str = CF_API_BASE
    timeout: float = Field(default=MAX_API_TIMEOUT, gt=0, le=MAX_API_TIMEOUT)

    @field_validator("api_base")
    @classmethod
    def check_api_base(cls, value: str) -> str:
        """Validate the API base URL."""
        return _check_http_url(value)


class FamilyConfig(BaseModel):
    """
    Address family configuration.

    Attributes
    ----------
    enabled : bool
        Whether records of this family are reconciled.
    provider : str
        URL returning the public address as plain text.
    """

    enabled: bool = True
    provider: str = DEFAULT_IPV4_PROVIDER

    @field_validator("provider")
    @classmethod
    def check_provider(cls, value: str) -> str:
        """Validate the lookup URL."""
        return _check_http_url(value)


class IPv6Config(FamilyConfig):
    """IPv6 lookup configuration; disabled by default."""

    enabled: bool = False
    provider: str = DEFAULT_IPV6_PROVIDER


class LookupConfig(BaseModel):
    """
    Public address lookup configuration.

    Attributes
    ----------
    timeout : float
        Timeout in seconds for each lookup.
    """

    timeout: float = Field(default=MAX_LOOKUP_TIMEOUT, gt=0, le=MAX_LOOKUP_TIMEOUT)


class ScheduleConfig(BaseModel):
    """
    Scheduling configuration.

    Time spans use the systemd format ("5m", "30s", "1h 30min").

    Attributes
    ----------
    interval : str
        Time between two reconciliation cycles.
    on_calendar : str | None
        systemd calendar expression replacing `interval` in the timer unit.
    boot_delay : str
        Grace delay after boot (or watch-mode start) before the first cycle.
    randomized_delay : str
        Upper bound of the random jitter added to each trigger.
    concurrency : int
        Number of record groups reconciled concurrently.
    """

    interval: str = "5m"
    on_calendar: str | None = None
    boot_delay: str = "1m"
    randomized_delay: str = "30s"
    concurrency: int = Field(default=4, ge=1, le=32)

    @field_validator("interval", "boot_delay", "randomized_delay")
    @classmethod
    def check_timespan(cls, value: str) -> str:
        """
        Validate a time span.

        Raises
        ------
        PydanticCustomError
            If the value is not a valid time span.
        """
        try:
            parse_timespan(value)
        except ValueError as e:
            err_type = "timespan_error"
            raise PydanticCustomError(err_type, str(e)) from e
        return value

    @field_validator("interval")
    @classmethod
    def check_interval_positive(cls, value: str) -> str:
        """Reject a zero interval."""
        if parse_timespan(value) <= 0:
            err_type = "timespan_error"
            raise PydanticCustomError(err_type, "interval must be greater than zero")
        return value

    @property
    def interval_seconds(self) -> float:
        """Get the interval in seconds."""
        return parse_timespan(self.interval)

    @property
    def boot_delay_seconds(self) -> float:
        """Get the boot delay in seconds."""
        return parse_timespan(self.boot_delay)

    @property
    def randomized_delay_seconds(self) -> float:
        """Get the jitter upper bound in seconds."""
        return parse_timespan(self.randomized_delay)


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Attributes
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    file_enabled : bool
        Whether to log to file.
    file_path : str
        Path to the log file.
    """

    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = "/var/log/cloudflare-ddns/cloudflare-ddns.log"

    @property
    def file_path_as_path(self) -> Path:
        """
        Get the log file path as a Path object.

        Returns
        -------
        Path
            The resolved log file path.
        """
        return Path(self.file_path)


class HealthConfig(BaseModel):
    """
    Status server configuration (watch mode only).

    Attributes
    ----------
    enabled : bool
        Whether the status server is started.
    host : str
        Host address to bind to.
    port : int
        Port number to listen on.
    """

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 38081


class Config(BaseModel):
    """
    Application configuration.

    Attributes
    ----------
    cloudflare : CloudflareConfig
        Cloudflare API configuration.
    ipv4 : FamilyConfig
        IPv4 lookup configuration.
    ipv6 : IPv6Config
        IPv6 lookup configuration.
    lookup : LookupConfig
        Lookup timeout configuration.
    schedule : ScheduleConfig
        Scheduling configuration.
    domains : list[DomainRecord]
        The records to keep in sync.
    logging : LoggingConfig
        Logging configuration.
    health : HealthConfig
        Status server configuration.
    """

    cloudflare: CloudflareConfig = CloudflareConfig()
    ipv4: FamilyConfig = FamilyConfig()
    ipv6: IPv6Config = IPv6Config()
    lookup: LookupConfig = LookupConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    domains: list[DomainRecord] = []
    logging: LoggingConfig = LoggingConfig()
    health: HealthConfig = HealthConfig()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_credentials_configured(self) -> Self:
        """
        Validate that both credential files are configured.

        Returns
        -------
        Self
            The validated model.

        Raises
        ------
        PydanticCustomError
            If the API token file or zone ID file is missing.
        """
        missing = [
            key
            for key in ("api_token_file", "zone_id_file")
            if not getattr(self.cloudflare, key)
        ]
        if missing:
            err_type = "credentials_config_error"
            raise PydanticCustomError(
                err_type,
                "Missing required Cloudflare settings: {missing}",
                {"missing": ", ".join(f"cloudflare.{k}" for k in missing)},
            )
        return self

    def family_config(self, family: AddressFamily) -> FamilyConfig:
        """Get the lookup configuration of an address family."""
        return self.ipv4 if family is AddressFamily.V4 else self.ipv6

    @property
    def enabled_families(self) -> list[AddressFamily]:
        """Get the enabled address families."""
        return [f for f in AddressFamily if self.family_config(f).enabled]


def _format_validation_errors(
    error: ValidationError,
    config_path: Path | None,
) -> str:
    """
    Format Pydantic validation errors into human-readable messages.

    Parameters
    ----------
    error : ValidationError
        Pydantic validation error.
    config_path : Path | None
        Path to the configuration file.

    Returns
    -------
    str
        Human-readable error message.
    """
    lines: list[str] = []

    if config_path:
        lines.append(f'Configuration error in "{config_path}":')
    else:
        lines.append("Configuration error:")

    for err in error.errors():
        # Build field path (e.g., "domains.0.ttl")
        field_path = ".".join(str(loc) for loc in err["loc"]) or "<root>"

        error_type = err["type"]
        error_input = err["input"]
        input_type = type(error_input).__name__

        value_repr = (
            f'"{error_input}"' if isinstance(error_input, str) else repr(error_input)
        )

        if error_type in {
            "credentials_config_error",
            "domain_name_error",
            "timespan_error",
            "url_error",
        }:
            lines.append(f"  [{field_path}]: {err['msg']}.")
        else:
            expected_type = _get_expected_type(error_type)
            lines.append(
                f"  [{field_path}]: Expected {expected_type}, got {input_type} (value: {value_repr}). {err['msg']}.",
            )

    return "\n".join(lines)


def _get_expected_type(error_type: str) -> str:
    """
    Get human-readable expected type from Pydantic error type.

    Parameters
    ----------
    error_type : str
        Pydantic error type string.

    Returns
    -------
    str
        Human-readable type name.
    """
    type_mapping = {
        "int_type": "int",
        "int_parsing": "int",
        "float_type": "float",
        "float_parsing": "float",
        "bool_type": "bool",
        "bool_parsing": "bool",
        "string_type": "str",
        "list_type": "list",
        "enum": "one of A, AAAA",
    }
    return type_mapping.get(error_type, error_type)


def validate_config_dict(
    data: dict[str, Any],
    config_path: Path | None = None,
) -> Config:
    """
    Validate a configuration dictionary using Pydantic.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary to validate.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Returns
    -------
    Config
        The validated configuration.

    Raises
    ------
    ConfigValidationError
        If validation fails.
    """
    try:
        return dict_to_config(data)
    except ValidationError as e:
        msg = _format_validation_errors(e, config_path)
        raise ConfigValidationError(msg, config_path) from e


def load_config_from_file(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a TOML file.

    Parameters
    ----------
    config_path : Path
        Path to the configuration file.

    Returns
    -------
    dict[str, Any]
        Parsed configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    tomllib.TOMLDecodeError
        If the configuration file is not valid TOML.
    """
    with config_path.open("rb") as f:
        return tomllib.load(f)


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Parameters
    ----------
    base : dict[str, Any]
        Base configuration.
    override : dict[str, Any]
        Override configuration (takes precedence).

    Returns
    -------
    dict[str, Any]
        Merged configuration.
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result


def _expand_path(value: Any) -> Any:
    return str(Path(value).expanduser()) if isinstance(value, str) and value else value


def dict_to_config(data: dict[str, Any]) -> Config:
    """
    Convert a dictionary to a Config object.

    User paths ("~/...") are expanded before validation.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary.

    Returns
    -------
    Config
        Configuration object.
    """
    data = copy.deepcopy(data)

    logging_section = data.get("logging")
    if isinstance(logging_section, dict) and "file_path" in logging_section:
        logging_section["file_path"] = _expand_path(logging_section["file_path"])

    cloudflare_section = data.get("cloudflare")
    if isinstance(cloudflare_section, dict):
        for key in ("api_token_file", "zone_id_file"):
            if key in cloudflare_section:
                cloudflare_section[key] = _expand_path(cloudflare_section[key])

    domains = data.get("domains")
    if isinstance(domains, list):
        for domain in domains:
            if isinstance(domain, dict) and "name_file" in domain:
                domain["name_file"] = _expand_path(domain["name_file"])

    return Config.model_validate(data)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Parameters
    ----------
    args : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    argparse.Namespace
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="cloudflare-ddns",
        description="Cloudflare DDNS - keep DNS records in sync with the public IP",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.toml)",
    )

    # Run mode arguments
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--watch",
        action="store_true",
        default=False,
        help="Keep running and reconcile on the configured interval",
    )
    mode_group.add_argument(
        "--render-units",
        type=Path,
        dest="render_units",
        default=None,
        metavar="DIR",
        help="Write systemd service and timer units to DIR and exit",
    )
    parser.add_argument(
        "--exec-path",
        type=str,
        dest="exec_path",
        default=None,
        help="Executable used in the rendered service unit (default: this program)",
    )

    # Address family arguments
    ipv4_group = parser.add_mutually_exclusive_group()
    ipv4_group.add_argument(
        "--ipv4-enabled",
        action="store_true",
        dest="ipv4_enabled",
        default=None,
        help="Reconcile A records",
    )
    ipv4_group.add_argument(
        "--ipv4-disabled",
        action="store_false",
        dest="ipv4_enabled",
        default=None,
        help="Do not reconcile A records",
    )
    ipv6_group = parser.add_mutually_exclusive_group()
    ipv6_group.add_argument(
        "--ipv6-enabled",
        action="store_true",
        dest="ipv6_enabled",
        default=None,
        help="Reconcile AAAA records",
    )
    ipv6_group.add_argument(
        "--ipv6-disabled",
        action="store_false",
        dest="ipv6_enabled",
        default=None,
        help="Do not reconcile AAAA records",
    )

    # Logging arguments
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level",
    )
    log_file_group = parser.add_mutually_exclusive_group()
    log_file_group.add_argument(
        "--log-file-enabled",
        action="store_true",
        dest="log_file_enabled",
        default=None,
        help="Enable logging to file",
    )
    log_file_group.add_argument(
        "--log-file-disabled",
        action="store_false",
        dest="log_file_enabled",
        default=None,
        help="Disable logging to file",
    )
    parser.add_argument(
        "--log-file-path",
        type=Path,
        dest="log_file_path",
        default=None,
        help="Path to the log file",
    )

    # Status server arguments
    health_group = parser.add_mutually_exclusive_group()
    health_group.add_argument(
        "--health-enabled",
        action="store_true",
        dest="health_enabled",
        default=None,
        help="Serve /health and /status in watch mode",
    )
    health_group.add_argument(
        "--health-disabled",
        action="store_false",
        dest="health_enabled",
        default=None,
        help="Do not start the status server",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Status server host address",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Status server port",
    )

    return parser.parse_args(args)


def resolve_config_path(args: argparse.Namespace) -> Path | None:
    """
    Get the configuration file to load, if any.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.

    Returns
    -------
    Path | None
        The explicit `--config` path, else "config.toml" when it exists.
    """
    config_path: Path | None = args.config
    if config_path is not None:
        return config_path.expanduser()
    default_config = Path("config.toml")
    if default_config.exists():
        return default_config
    return None


def load_config(args: argparse.Namespace | None = None) -> Config:
    """
    Load configuration from file and command-line arguments.

    Priority (high to low):
    1. Command-line arguments
    2. Configuration file
    3. Default values

    Parameters
    ----------
    args : argparse.Namespace | None, optional
        Parsed command-line arguments.

    Returns
    -------
    Config
        Loaded configuration.

    Raises
    ------
    ConfigValidationError
        If the merged configuration is invalid.
    """
    if args is None:
        args = parse_args()

    config_dict: dict[str, Any] = {}

    config_path = resolve_config_path(args)
    if config_path is not None:
        if config_path.exists():
            logger_basic.info('Loading configuration from "%s".', config_path)
            try:
                config_dict = load_config_from_file(config_path)
            except tomllib.TOMLDecodeError as e:
                logger_basic.critical('Failed to parse configuration file: "%s".', e)
                sys.exit(1)
        else:
            logger_basic.critical("Configuration file not found: %s", config_path)
            sys.exit(1)

    cli_overrides: dict[str, Any] = {}

    # Address family overrides
    if args.ipv4_enabled is not None:
        cli_overrides.setdefault("ipv4", {})["enabled"] = args.ipv4_enabled
    if args.ipv6_enabled is not None:
        cli_overrides.setdefault("ipv6", {})["enabled"] = args.ipv6_enabled

    # Logging overrides
    if args.log_level is not None:
        cli_overrides.setdefault("logging", {})["level"] = args.log_level
    if args.log_file_enabled is not None:
        cli_overrides.setdefault("logging", {})["file_enabled"] = args.log_file_enabled
    if args.log_file_path is not None:
        cli_overrides.setdefault("logging", {})["file_path"] = str(args.log_file_path)

    # Status server overrides
    if args.health_enabled is not None:
        cli_overrides.setdefault("health", {})["enabled"] = args.health_enabled
    if args.host is not None:
        cli_overrides.setdefault("health", {})["host"] = args.host
    if args.port is not None:
        cli_overrides.setdefault("health", {})["port"] = args.port

    if cli_overrides:
        config_dict = merge_config(config_dict, cli_overrides)

    return validate_config_dict(config_dict, config_path)
