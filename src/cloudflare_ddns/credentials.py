"""
Secret inputs for Cloudflare DDNS.

The API token, the zone identifier and (optionally) the domain names are
supplied as file paths, never as literals in process arguments. When the
service runs under systemd with `LoadCredential=`, the files are read from
`$CREDENTIALS_DIRECTORY` instead of their original (root-owned) location.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, SecretStr

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import Final

    from cloudflare_ddns.config import Config
    from cloudflare_ddns.models import DomainRecord


# Credential names used with systemd LoadCredential=
API_TOKEN_CREDENTIAL: Final[str] = "api-token"
ZONE_ID_CREDENTIAL: Final[str] = "zone-id"
# Domain name files are passed as "domain-<index in [[domains]]>"
DOMAIN_CREDENTIAL_PREFIX: Final[str] = "domain-"


logger = logging.getLogger(__name__)


class SecretError(Exception):
    """
    Exception raised when a secret file cannot be used.

    Attributes
    ----------
    path : Path
        The offending file.
    """

    def __init__(self, message: str, path: Path) -> None:
        self.path = path
        super().__init__(message)


class Credentials(BaseModel):
    """
    Cloudflare API credentials.

    Attributes
    ----------
    api_token : SecretStr
        The API token; masked in reprs and logs.
    zone_id : str
        The zone identifier.
    """

    api_token: SecretStr
    zone_id: str

    model_config = {"frozen": True}


def read_secret_file(path: str | Path, *, allow_empty: bool = False) -> str:
    """
    Read a secret file and strip surrounding whitespace.

    Parameters
    ----------
    path : str | Path
        The file to read.
    allow_empty : bool, optional
        Return an empty string instead of raising for an empty file.

    Returns
    -------
    str
        The stripped file contents.

    Raises
    ------
    SecretError
        If the file cannot be read, or is empty and `allow_empty` is False.
    """
    secret_path = Path(path)
    try:
        value = secret_path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        msg = f'Cannot read secret file "{secret_path}": {e}'
        raise SecretError(msg, secret_path) from e
    if not value and not allow_empty:
        msg = f'Secret file "{secret_path}" is empty'
        raise SecretError(msg, secret_path)
    return value


def _credential_path(
    configured: str,
    credential_name: str,
    environ: Mapping[str, str],
) -> Path:
    """
    Pick the file a credential is read from.

    Parameters
    ----------
    configured : str
        The path from the configuration.
    credential_name : str
        The systemd credential name.
    environ : Mapping[str, str]
        Process environment.

    Returns
    -------
    Path
        `$CREDENTIALS_DIRECTORY/<credential_name>` when present, else the
        configured path.
    """
    credentials_dir = environ.get("CREDENTIALS_DIRECTORY")
    if credentials_dir:
        candidate = Path(credentials_dir) / credential_name
        if candidate.is_file():
            return candidate
    return Path(configured)


def load_credentials(
    config: Config,
    environ: Mapping[str, str] | None = None,
) -> Credentials:
    """
    Load the API token and zone identifier.

    Parameters
    ----------
    config : Config
        Application configuration.
    environ : Mapping[str, str] | None, optional
        Process environment (defaults to `os.environ`).

    Returns
    -------
    Credentials
        The loaded credentials.

    Raises
    ------
    SecretError
        If either file is unreadable or empty.
    """
    if environ is None:
        environ = os.environ

    token_path = _credential_path(
        config.cloudflare.api_token_file, API_TOKEN_CREDENTIAL, environ,
    )
    zone_path = _credential_path(
        config.cloudflare.zone_id_file, ZONE_ID_CREDENTIAL, environ,
    )
    logger.debug('Reading API token from "%s".', token_path)
    logger.debug('Reading zone ID from "%s".', zone_path)

    return Credentials(
        api_token=SecretStr(read_secret_file(token_path)),
        zone_id=read_secret_file(zone_path),
    )


def domain_credential_name(index: int) -> str:
    """Get the systemd credential name of the name file of domain `index`."""
    return f"{DOMAIN_CREDENTIAL_PREFIX}{index}"


def resolve_domain_name(
    record: DomainRecord,
    index: int,
    environ: Mapping[str, str] | None = None,
) -> str:
    """
    Resolve the domain name of a record.

    A `name_file` is read from `$CREDENTIALS_DIRECTORY/domain-<index>` when
    that credential exists.

    Parameters
    ----------
    record : DomainRecord
        The configured record.
    index : int
        Position of the record in the configuration.
    environ : Mapping[str, str] | None, optional
        Process environment (defaults to `os.environ`).

    Returns
    -------
    str
        The literal name, or the stripped contents of `name_file` (possibly
        empty).

    Raises
    ------
    SecretError
        If `name_file` cannot be read.
    """
    if record.name_file is not None:
        if environ is None:
            environ = os.environ
        path = _credential_path(record.name_file, domain_credential_name(index), environ)
        return read_secret_file(path, allow_empty=True)
    return (record.name or "").strip()


def check_name_sources(
    records: Iterable[DomainRecord],
    environ: Mapping[str, str] | None = None,
) -> None:
    """
    Check at startup that every name file is readable.

    Parameters
    ----------
    records : Iterable[DomainRecord]
        The configured records, in configuration order.
    environ : Mapping[str, str] | None, optional
        Process environment (defaults to `os.environ`).

    Raises
    ------
    SecretError
        For the first unreadable name file.
    """
    for index, record in enumerate(records):
        if record.name_file is not None:
            resolve_domain_name(record, index, environ)
