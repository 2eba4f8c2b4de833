"""Asynchronous export of seasonal composites.

``Exporter.export`` validates its arguments, submits a job to a thread
pool and returns an ``ExportHandle`` at once. Job failures are reported
on the handle as ``ExportFailureError``; nothing is retried.
"""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from types import TracebackType

from seasonalndvi._types import Grid
from seasonalndvi.analysis.compositing import SeasonalComposite
from seasonalndvi.boundaries import Boundary
from seasonalndvi.config import Config, get_default_config, validate_crs
from seasonalndvi.destinations import Destination
from seasonalndvi.exceptions import ConfigurationError, ExportFailureError
from seasonalndvi.raster import clip_to_boundary

logger = logging.getLogger(__name__)


class ExportStatus(str, enum.Enum):
    """Lifecycle state of an export job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExportHandle:
    """Descriptor of a submitted export job.

    Args:
        job_id: Unique job identifier.
        destination_id: ``<destination>:<folder>/<filename>`` of the target.
        description: Export name as given by the caller.
    """

    def __init__(self, job_id: str, destination_id: str, description: str) -> None:
        self._job_id = job_id
        self._destination_id = destination_id
        self._description = description
        self._status = ExportStatus.PENDING
        self._error: ExportFailureError | None = None
        self._location: str | None = None
        self._future: Future[None] | None = None
        self._lock = threading.Lock()

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def destination_id(self) -> str:
        return self._destination_id

    @property
    def description(self) -> str:
        return self._description

    @property
    def status(self) -> ExportStatus:
        with self._lock:
            return self._status

    @property
    def error(self) -> ExportFailureError | None:
        """The failure, once ``status`` is ``FAILED``."""
        with self._lock:
            return self._error

    @property
    def location(self) -> str | None:
        """URI reported by the destination, once ``status`` is ``COMPLETED``."""
        with self._lock:
            return self._location

    def done(self) -> bool:
        return self.status in (ExportStatus.COMPLETED, ExportStatus.FAILED)

    def wait(self, timeout: float | None = None) -> ExportStatus:
        """Block until the job finishes or *timeout* seconds pass.

        Returns:
            The status at return time.
        """
        if self._future is not None:
            wait_futures([self._future], timeout=timeout)
        return self.status

    def _attach(self, future: Future[None]) -> None:
        self._future = future

    def _set_running(self) -> None:
        with self._lock:
            self._status = ExportStatus.RUNNING

    def _complete(self, location: str) -> None:
        with self._lock:
            self._status = ExportStatus.COMPLETED
            self._location = location

    def _fail(self, error: ExportFailureError) -> None:
        with self._lock:
            self._status = ExportStatus.FAILED
            self._error = error

    def __repr__(self) -> str:
        return (
            f"ExportHandle(job_id={self._job_id!r}, "
            f"destination={self._destination_id!r}, status={self.status.value})"
        )


class Exporter:
    """Submits composite exports to a destination.

    Jobs for different destination names are independent and may run
    concurrently.

    Args:
        destination: Where encoded GeoTIFFs are written.
        max_workers: Concurrent jobs; ``Config.max_export_workers`` if ``None``.
        config: Configuration snapshot.

    Example:
        >>> with Exporter(LocalDestination("exports")) as exporter:
        ...     handle = exporter.export(
        ...         summer, "Summer_NDVI_2022", scale=5000,
        ...         crs="EPSG:4326", boundary=india,
        ...     )  # doctest: +SKIP
    """

    def __init__(
        self,
        destination: Destination,
        *,
        max_workers: int | None = None,
        config: Config | None = None,
    ) -> None:
        self._config = config if config is not None else get_default_config()
        self._destination = destination
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or self._config.max_export_workers,
            thread_name_prefix="seasonalndvi-export",
        )

    @property
    def destination(self) -> Destination:
        return self._destination

    def export(
        self,
        composite: SeasonalComposite,
        destination_name: str,
        scale: float,
        crs: str,
        boundary: Boundary | None = None,
        *,
        folder: str | None = None,
    ) -> ExportHandle:
        """Submit an export of *composite* and return its handle.

        Args:
            composite: Composite to evaluate and write.
            destination_name: File name (``.tif`` is appended if missing).
            scale: Output ground sample distance in metres.
            crs: Output CRS, ``"EPSG:<code>"``.
            boundary: Export region; the composite's boundary if ``None``.
            folder: Destination folder; ``Config.export_folder`` if ``None``.

        Returns:
            A handle in ``PENDING`` or a later state.

        Raises:
            ConfigurationError: If an argument is invalid. Job failures are
                never raised here.
        """
        self._validate(destination_name, scale, crs)
        region = boundary if boundary is not None else composite.boundary
        target_folder = folder or self._config.export_folder
        filename = (
            destination_name
            if destination_name.lower().endswith(".tif")
            else f"{destination_name}.tif"
        )

        handle = ExportHandle(
            job_id=uuid.uuid4().hex,
            destination_id=f"{self._destination.name}:{target_folder}/{filename}",
            description=destination_name,
        )
        future = self._executor.submit(
            self._run, handle, composite, region, target_folder, filename, scale, crs
        )
        handle._attach(future)
        logger.info("Submitted export %s as job %s", handle.destination_id, handle.job_id)
        return handle

    @staticmethod
    def _validate(destination_name: str, scale: float, crs: str) -> None:
        if not destination_name or "/" in destination_name:
            raise ConfigurationError(
                what=f"Invalid export name: {destination_name!r}",
                cause="Export names must be non-empty and contain no '/'",
                fix="Pass a plain file name such as 'Summer_NDVI_2022'",
            )
        if scale <= 0:
            raise ConfigurationError(
                what=f"Invalid export scale: {scale}",
                cause="Scale must be greater than 0 metres per pixel",
                fix="Pass a positive scale, e.g. 5000",
            )
        try:
            validate_crs(crs)
        except ValueError as exc:
            raise ConfigurationError(
                what=f"Invalid export CRS: {crs!r}",
                cause=str(exc),
                fix="Pass a CRS such as 'EPSG:4326'",
            ) from None

    def _run(
        self,
        handle: ExportHandle,
        composite: SeasonalComposite,
        boundary: Boundary,
        folder: str,
        filename: str,
        scale: float,
        crs: str,
    ) -> None:
        handle._set_running()
        try:
            grid = Grid.from_bounds(boundary.bounds, scale, crs)
            result = composite.evaluate(grid, scale=scale)
            if boundary is not composite.boundary:
                result.data = clip_to_boundary(result.data, grid, boundary)
            location = self._destination.write(
                folder, filename, result.to_geotiff_bytes()
            )
        except Exception as exc:  # noqa: BLE001 - reported through the handle
            error = (
                exc
                if isinstance(exc, ExportFailureError)
                else ExportFailureError(
                    what=f"Export {handle.destination_id} failed",
                    cause=f"{type(exc).__name__}: {exc}",
                    fix="Check credentials, quota and region, then re-run the export",
                )
            )
            error.__cause__ = exc if error is not exc else None
            handle._fail(error)
            logger.warning("Export job %s failed: %s", handle.job_id, exc)
            return

        handle._complete(location)
        logger.info("Export job %s completed: %s", handle.job_id, location)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; optionally wait for running ones."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> Exporter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown(wait=True)
