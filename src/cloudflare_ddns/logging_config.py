"""
Logging configuration for Cloudflare DDNS.

This module provides logging setup with support for console and file output.
Sensitive information is automatically masked in log messages.
"""

from __future__ import annotations

import copy
import logging
import logging.handlers
import re
import sys
from typing import TYPE_CHECKING

from uvicorn.config import LOGGING_CONFIG

if TYPE_CHECKING:
    from typing import Final

    from cloudflare_ddns.config import LoggingConfig


# Pattern to match sensitive tokens in log messages
# Each tuple is (pattern, replacement)
# For partial masking, capture the prefix to keep and mask the rest
SENSITIVE_PATTERNS: Final[list[tuple[re.Pattern[str], str]]] = [
    # Authorization header (Cloudflare API token)
    # Keep first 6 characters, mask the rest
    (
        re.compile(
            r"((?:Authorization:\s*)?Bearer\s+)(.{0,6})([^\s\"']*)", re.IGNORECASE,
        ),
        r"\1\2******",
    ),
    # token=... / api_token=... (quoted or unquoted)
    # Keep first 6 characters of the value, mask the rest
    (
        re.compile(r'((?:api_)?token=")(.{0,6})([^"]*)"', re.IGNORECASE),
        r'\1\2******"',
    ),
    (
        re.compile(r"((?:api_)?token=')(.{0,6})([^']*)'", re.IGNORECASE),
        r"\1\2******'",
    ),
    (
        re.compile(
            r"((?:api_)?token=)(?![\"'])([^\s,\"&']{0,6})([^\s,\"&']*)",
            re.IGNORECASE,
        ),
        r"\1\2******",
    ),
]


# Constants
LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER: Final[str] = "cloudflare_ddns"


class SensitiveFilter(logging.Filter):
    """
    A logging filter that masks sensitive information.

    This filter replaces API tokens with asterisks to prevent credential
    leakage in the log stream and log files.
    """

    # Fields in record.__dict__ that may contain sensitive data
    # These are set by formatters like uvicorn's AccessFormatter
    _SENSITIVE_DICT_KEYS: tuple[str, ...] = (
        "request_line",
        "full_path",
        "url",
        "headers",
    )

    @staticmethod
    def _mask_sensitive(value: str) -> str:
        """
        Apply all sensitive patterns to mask a string.

        Parameters
        ----------
        value : str
            The string to process.

        Returns
        -------
        str
            The string with sensitive data masked.
        """
        result = value
        for pattern, replacement in SENSITIVE_PATTERNS:
            result = pattern.sub(replacement, result)
        return result

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Filter and modify log record to mask sensitive data.

        Parameters
        ----------
        record : logging.LogRecord
            The log record to process.

        Returns
        -------
        bool
            Always returns True (record is always logged).
        """
        if record.msg:
            record.msg = self._mask_sensitive(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._mask_sensitive(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._mask_sensitive(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        for key in self._SENSITIVE_DICT_KEYS:
            value = record.__dict__.get(key)
            if isinstance(value, str):
                record.__dict__[key] = self._mask_sensitive(value)

        return True


def _configure_handler(handler: logging.Handler) -> None:
    """
    Configure a logging handler with formatter and sensitive filter.

    Parameters
    ----------
    handler : logging.Handler
        The handler to configure.
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveFilter())


def setup_logging(config: LoggingConfig) -> None:
    """
    Set up logging based on configuration.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    _configure_handler(console_handler)
    logger.addHandler(console_handler)

    if config.file_enabled:
        log_path = config.file_path_as_path
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.WatchedFileHandler(
                str(log_path),
                encoding="utf-8",
                delay=False,
            )
            _configure_handler(file_handler)
            logger.addHandler(file_handler)
            logger.info('File logging enabled: "%s".', log_path)
        except OSError as e:
            logger.critical("Failed to enable file logging: %s", e)
            sys.exit(1)

    # httpx logs every request URL at INFO; keep it below our own decisions
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.propagate = False


def build_uvicorn_log_config(config: LoggingConfig) -> dict:
    """
    Build uvicorn log configuration dictionary for the status server.

    Preserves uvicorn's default console output, adds file logging when
    enabled, and applies the sensitive information filter to all handlers.

    Parameters
    ----------
    config : LoggingConfig
        Logging configuration from the application.

    Returns
    -------
    dict
        A uvicorn-compatible log configuration dictionary.
    """
    log_config = copy.deepcopy(LOGGING_CONFIG)

    log_config.setdefault("filters", {})["sensitive"] = {
        "()": f"{__name__}.SensitiveFilter",
    }
    log_config["handlers"]["default"].setdefault("filters", []).append("sensitive")
    log_config["handlers"]["access"].setdefault("filters", []).append("sensitive")

    if config.file_enabled:
        log_path = config.file_path_as_path
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.touch(exist_ok=True)
        except OSError as e:
            logging.getLogger(PACKAGE_LOGGER).critical("Failed to create log file: %s", e)
            sys.exit(1)

        log_config.setdefault("formatters", {})["file"] = {
            "format": LOG_FORMAT,
            "datefmt": DATE_FORMAT,
        }
        log_config.setdefault("handlers", {})["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "filename": str(log_path),
            "encoding": "utf-8",
            "delay": False,
            "formatter": "file",
            "filters": ["sensitive"],
        }

        # "uvicorn.error" propagates to "uvicorn"
        log_config["loggers"]["uvicorn"]["handlers"].append("file")
        log_config["loggers"]["uvicorn.access"]["handlers"].append("file")

    return log_config
