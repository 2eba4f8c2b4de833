"""Configuration and credential management for seasonalndvi."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from seasonalndvi.exceptions import ConfigurationError

logger = logging.getLogger("seasonalndvi")

_CREDENTIALS_ENV_VAR = "SEASONALNDVI_CREDENTIALS"
_DEFAULT_CREDENTIALS_PATH = Path("~/.seasonalndvi/drive-service-account.json")
_CRS_PATTERN = re.compile(r"^EPSG:\d+$")

DEFAULT_STAC_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"


def validate_crs(value: str) -> str:
    """Return *value* if it is an ``EPSG:<code>`` string.

    Raises:
        ValueError: If the string does not match the EPSG format.
    """
    if not _CRS_PATTERN.match(value):
        msg = f"CRS must match 'EPSG:<number>' format, got {value!r}"
        raise ValueError(msg)
    return value


class Config(BaseModel):
    """Package configuration model.

    Immutable pydantic model. Pipelines capture the active ``Config``
    when they are built so later ``configure()`` calls do not affect
    composites that already exist.

    Args:
        stac_url: Root of the STAC API serving raster collections.
        drive_credentials: Path to a Google service-account key used by
            the Drive export destination.
        default_crs: CRS used when a sink does not name one.
        export_folder: Folder name exports are written into.
        export_scale_m: Default export ground sample distance in metres.
        chart_scale_m: Ground sample distance used for time-series charts.
        max_export_workers: Concurrent export jobs per ``Exporter``.
        request_timeout_s: HTTP connect timeout in seconds.

    Example:
        >>> cfg = Config(export_scale_m=1000)
        >>> cfg.default_crs
        'EPSG:4326'
    """

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    stac_url: str = DEFAULT_STAC_URL
    drive_credentials: Path | None = None
    default_crs: str = "EPSG:4326"
    export_folder: str = "NDVI_Export"
    export_scale_m: float = 5000.0
    chart_scale_m: float = 4000.0
    max_export_workers: int = 2
    request_timeout_s: float = 30.0

    @field_validator("drive_credentials", mode="before")
    @classmethod
    def _expand_credential_path(
        cls,
        v: str | Path | None,
    ) -> Path | None:
        """Expand ``~`` in the credentials path."""
        if v is None:
            return None
        return Path(v).expanduser()

    @field_validator("stac_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("export_scale_m", "chart_scale_m", "request_timeout_s")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        """Ensure scales and timeouts are positive."""
        if v <= 0:
            msg = "value must be greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("max_export_workers")
    @classmethod
    def _validate_workers(cls, v: int) -> int:
        if v < 1:
            msg = "max_export_workers must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("default_crs")
    @classmethod
    def _validate_crs(cls, v: str) -> str:
        """Ensure CRS matches EPSG format."""
        return validate_crs(v)


_default_config = Config()


def configure(**kwargs: Any) -> None:
    """Set module-level default configuration.

    Creates a new ``Config`` from the current defaults merged with
    the provided keyword arguments.

    Args:
        **kwargs: Any ``Config`` field.

    Raises:
        ValidationError: If a provided value fails pydantic validation.

    Example:
        >>> configure(export_folder="NDVI_2023", export_scale_m=1000)
    """
    global _default_config  # noqa: PLW0603
    current = _default_config.model_dump()
    current.update(kwargs)
    _default_config = Config(**current)


def get_default_config() -> Config:
    """Return the current module-level default configuration."""
    return _default_config


def resolve_credentials_path(
    explicit: Path | None = None,
) -> Path | None:
    """Resolve the credentials file path.

    Resolution order:
        1. *explicit* argument (highest priority)
        2. ``SEASONALNDVI_CREDENTIALS`` environment variable
        3. Default ``~/.seasonalndvi/drive-service-account.json``

    Emits a warning if the resolved file is readable by group or others
    on POSIX systems.

    Args:
        explicit: An explicit path passed via ``Config``.

    Returns:
        Resolved ``Path``, or ``None`` if no credentials file exists
        at any of the candidate locations.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
    elif os.environ.get(_CREDENTIALS_ENV_VAR):
        path = Path(os.environ[_CREDENTIALS_ENV_VAR]).expanduser()
    else:
        path = _DEFAULT_CREDENTIALS_PATH.expanduser()

    if not path.exists():
        return None

    _check_file_permissions(path)
    return path


def _check_file_permissions(path: Path) -> None:
    """Warn if *path* is readable by group or others.

    Skipped on Windows where POSIX permission bits are not meaningful.
    """
    if sys.platform == "win32":
        return
    try:
        mode = path.stat().st_mode
        if mode & 0o077:
            logger.warning(
                "Credentials file %s has overly permissive "
                "permissions (%o). Consider running: "
                "chmod 600 %s",
                path,
                mode & 0o777,
                path,
            )
    except OSError:
        pass


def load_credentials(path: Path) -> dict[str, Any]:
    """Load and parse a JSON service-account key file.

    Args:
        path: Absolute or ``~``-expanded path to the JSON file.

    Returns:
        Parsed credentials dictionary.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not a
            JSON object, or not a service-account key.
    """
    resolved = Path(path).expanduser()
    try:
        text = resolved.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(
            what="Cannot read credentials file",
            cause=f"File not found: {resolved}",
            fix=(
                f"Create {resolved} with a Google service-account key, "
                f"or set the {_CREDENTIALS_ENV_VAR} environment variable"
            ),
        ) from None
    except PermissionError:
        raise ConfigurationError(
            what="Cannot read credentials file",
            cause=f"Permission denied: {resolved}",
            fix=f"Check file permissions on {resolved}",
        ) from None

    try:
        parsed: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            what="Invalid credentials file format",
            cause=f"JSON parse error in {resolved}: {exc}",
            fix="Download a fresh service-account key from the Google Cloud console",
        ) from None

    if not isinstance(parsed, dict):
        raise ConfigurationError(
            what="Invalid credentials file format",
            cause=f"Expected a JSON object in {resolved}, got {type(parsed).__name__}",
            fix="Download a fresh service-account key from the Google Cloud console",
        )

    if parsed.get("type") != "service_account":
        raise ConfigurationError(
            what="Unsupported credentials type",
            cause=f"{resolved} is not a service-account key",
            fix='Use a key file whose "type" is "service_account"',
        )

    return parsed
