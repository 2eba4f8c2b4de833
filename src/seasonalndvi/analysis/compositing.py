"""Seasonal temporal-mean compositing of NDVI collections."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from seasonalndvi._types import FloatArray, Grid
from seasonalndvi.analysis.vegetation import NDVI_BAND
from seasonalndvi.boundaries import Boundary
from seasonalndvi.raster import TRUNCATED_KEY, ImageCollection, clip_to_boundary
from seasonalndvi.results import CompositeResult, ResultMetadata
from seasonalndvi.seasons import DateRange

logger = logging.getLogger(__name__)


def temporal_mean(
    layers: Iterable[FloatArray],
    shape: tuple[int, int] | None = None,
) -> FloatArray:
    """Pixel-wise mean of *layers*, ignoring NaN.

    Accumulates a running sum and count so layers are never stacked.
    Pixels with no valid value in any layer are NaN.

    Args:
        layers: 2-D arrays of identical shape.
        shape: Output shape used when *layers* is empty.

    Returns:
        float64 mean array.

    Raises:
        ValueError: If *layers* is empty and no *shape* is given, or the
            layer shapes differ.
    """
    total: FloatArray | None = None
    count: np.ndarray | None = None

    for layer in layers:
        values = np.asarray(layer, dtype=np.float64)
        if total is None or count is None:
            total = np.zeros(values.shape, dtype=np.float64)
            count = np.zeros(values.shape, dtype=np.int64)
        elif values.shape != total.shape:
            msg = f"Layer shape {values.shape} does not match {total.shape}"
            raise ValueError(msg)
        valid = ~np.isnan(values)
        total += np.where(valid, values, 0.0)
        count += valid

    if total is None or count is None:
        if shape is None:
            msg = "temporal_mean of no layers needs an explicit shape"
            raise ValueError(msg)
        return np.full(shape, np.nan, dtype=np.float64)

    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(count > 0, total / np.maximum(count, 1), np.nan)


@dataclass(frozen=True)
class SeasonalComposite:
    """Deferred mean NDVI of one season over a boundary.

    Building one reads nothing; ``read`` and ``compute`` evaluate it.

    Args:
        collection: NDVI-only plan already filtered to ``date_range``.
        date_range: Season window.
        boundary: Clip region.
        name: Season name (e.g., ``"summer"``).
    """

    collection: ImageCollection
    date_range: DateRange
    boundary: Boundary
    name: str = ""

    def read(self, grid: Grid) -> FloatArray:
        """Evaluate the clipped mean on *grid*."""
        return self.evaluate(grid).data

    def evaluate(self, grid: Grid, *, scale: float | None = None) -> CompositeResult:
        """Evaluate on *grid* and wrap the array with metadata.

        An empty season yields an all-NaN result, not an error.
        """
        images = self.collection.images()
        logger.info(
            "Compositing %s: %d images in %s on %dx%d grid",
            self.name or self.collection.collection_id,
            len(images),
            self.date_range,
            grid.width,
            grid.height,
        )

        warnings: list[str] = []
        if not images:
            warnings.append(f"No images found in {self.date_range}")
        caps = [
            img.metadata[TRUNCATED_KEY] for img in images if TRUNCATED_KEY in img.metadata
        ]
        if caps:
            warnings.append(
                f"Catalog search truncated at {caps[0]} items; "
                "the composite may be missing images"
            )

        mean = temporal_mean(
            (image.read(NDVI_BAND, grid) for image in images),
            shape=grid.shape,
        )
        data = clip_to_boundary(mean.astype(np.float32), grid, self.boundary)

        minx, miny, maxx, maxy = grid.bounds
        metadata = ResultMetadata(
            source=self.collection.collection_id,
            timestamps=[image.timestamp.isoformat() for image in images],
            observation_count=len(images),
            crs=grid.crs,
            bounds={"minx": minx, "miny": miny, "maxx": maxx, "maxy": maxy},
            resolution_m=scale,
            bands=[NDVI_BAND],
        )
        return CompositeResult(
            data=data,
            grid=grid,
            name=self.name,
            metadata=metadata,
            warnings=warnings,
        )

    def compute(self, scale: float, crs: str = "EPSG:4326") -> CompositeResult:
        """Evaluate over the boundary's extent at *scale* metres in *crs*."""
        grid = Grid.from_bounds(self.boundary.bounds, scale, crs)
        return self.evaluate(grid, scale=scale)


def composite(
    collection: ImageCollection,
    date_range: DateRange,
    boundary: Boundary,
    *,
    name: str = "",
) -> SeasonalComposite:
    """Plan the mean NDVI of *collection* over *date_range*, clipped to *boundary*.

    Args:
        collection: Collection whose images carry an ``NDVI`` band.
        date_range: Season window; images outside it are dropped.
        boundary: Clip region.
        name: Season name carried onto results.

    Returns:
        An unevaluated ``SeasonalComposite``.

    Example:
        >>> summer = composite(ndvi, SUMMER_2022, india, name="summer")
        >>> result = summer.compute(scale=5000)  # doctest: +SKIP
    """
    planned = collection.filter_date(date_range).select(NDVI_BAND)
    logger.debug("Planned composite %s over %s", name, date_range)
    return SeasonalComposite(
        collection=planned,
        date_range=date_range,
        boundary=boundary,
        name=name,
    )
