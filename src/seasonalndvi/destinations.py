"""Storage destinations for exported rasters.

A destination stores an encoded file under ``folder/filename``. Writing
the same name twice overwrites, so re-running an export is idempotent.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from seasonalndvi.config import (
    Config,
    get_default_config,
    load_credentials,
    resolve_credentials_path,
)
from seasonalndvi.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_FOLDER_MIME = "application/vnd.google-apps.folder"
_GEOTIFF_MIME = "image/tiff"


class Destination(ABC):
    """Abstract storage location for exported files."""

    _name: str = ""

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    def write(self, folder: str, filename: str, payload: bytes) -> str:
        """Store *payload* as *filename* inside *folder*.

        Returns:
            A URI or identifier of the stored file.
        """
        ...


class LocalDestination(Destination):
    """Writes into a directory tree on the local filesystem.

    Files are written to a temporary name and renamed into place, so a
    reader never sees a partial file.

    Args:
        root: Directory folders are created under.

    Example:
        >>> dest = LocalDestination("/tmp/exports")
        >>> dest.write("NDVI_Export", "Summer_NDVI_2022.tif", b"...")  # doctest: +SKIP
        '/tmp/exports/NDVI_Export/Summer_NDVI_2022.tif'
    """

    _name = "local"

    def __init__(self, root: str | Path = ".") -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def write(self, folder: str, filename: str, payload: bytes) -> str:
        directory = self._root / folder
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / filename
        partial = directory / f".{filename}.part"
        try:
            partial.write_bytes(payload)
            os.replace(partial, target)
        except OSError:
            partial.unlink(missing_ok=True)
            raise
        logger.info("Wrote %d bytes to %s", len(payload), target)
        return str(target)


class DriveDestination(Destination):
    """Uploads into a Google Drive folder with pydrive2.

    Authenticates with the service-account key resolved from
    ``Config.drive_credentials`` on first use. Folders are created when
    missing; a file with the same title in the folder is updated in place.

    Args:
        config: Configuration holding the credentials path.
        drive: Pre-authenticated ``GoogleDrive`` (skips authentication).
    """

    _name = "drive"

    def __init__(self, config: Config | None = None, drive: Any = None) -> None:
        self._config = config if config is not None else get_default_config()
        self._drive = drive
        self._lock = threading.Lock()

    def _connect(self) -> Any:
        from pydrive2.auth import GoogleAuth
        from pydrive2.drive import GoogleDrive

        creds_path = resolve_credentials_path(self._config.drive_credentials)
        if creds_path is None:
            raise ConfigurationError(
                what="Google Drive credentials not found",
                cause="No service-account key at any configured location",
                fix=(
                    "Pass Config(drive_credentials=...) or set the "
                    "SEASONALNDVI_CREDENTIALS environment variable"
                ),
            )
        load_credentials(creds_path)

        gauth = GoogleAuth(
            settings={
                "client_config_backend": "service",
                "service_config": {"client_json_file_path": str(creds_path)},
            }
        )
        gauth.ServiceAuth()
        logger.debug("Authenticated to Google Drive with %s", creds_path)
        return GoogleDrive(gauth)

    def _folder_id(self, drive: Any, folder: str) -> str:
        found = drive.ListFile({
            "q": (
                f"title='{_quote(folder)}' and mimeType='{_FOLDER_MIME}' "
                "and trashed=false"
            )
        }).GetList()
        if found:
            return str(found[0]["id"])

        created = drive.CreateFile({"title": folder, "mimeType": _FOLDER_MIME})
        created.Upload()
        logger.info("Created Drive folder %s", folder)
        return str(created["id"])

    def write(self, folder: str, filename: str, payload: bytes) -> str:
        with self._lock:
            if self._drive is None:
                self._drive = self._connect()
            drive = self._drive

            folder_id = self._folder_id(drive, folder)
            existing = drive.ListFile({
                "q": (
                    f"title='{_quote(filename)}' and '{folder_id}' in parents "
                    "and trashed=false"
                )
            }).GetList()
            if existing:
                drive_file = existing[0]
                logger.info("Overwriting Drive file %s/%s", folder, filename)
            else:
                drive_file = drive.CreateFile({
                    "title": filename,
                    "parents": [{"id": folder_id}],
                    "mimeType": _GEOTIFF_MIME,
                })

            fd, tmp_name = tempfile.mkstemp(suffix=".tif")
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(payload)
                drive_file.SetContentFile(tmp_name)
                drive_file.Upload()
            finally:
                os.unlink(tmp_name)

        return f"drive://{folder}/{filename}?id={drive_file['id']}"


def _quote(value: str) -> str:
    """Escape *value* for a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def get_destination(
    name: str,
    config: Config | None = None,
    **kwargs: Any,
) -> Destination:
    """Return a destination by name.

    Args:
        name: ``"local"`` or ``"drive"`` (case-insensitive).
        config: Configuration snapshot.
        **kwargs: ``root`` for the local destination.

    Raises:
        ConfigurationError: If *name* is unknown.
    """
    key = name.lower()
    if key == "local":
        return LocalDestination(kwargs.get("root", "."))
    if key == "drive":
        return DriveDestination(config=config)
    raise ConfigurationError(
        what=f"Unknown export destination: {name!r}",
        cause="Valid destinations are: drive, local",
        fix="Use one of: drive, local",
    )
