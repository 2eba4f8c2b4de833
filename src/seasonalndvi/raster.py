"""Deferred images and image-collection plans.

Nothing in this module reads pixels until a ``BandReader`` is called
with a ``Grid``. Collection operations (``filter_bounds``,
``filter_date``, ``select``, ``map``) only record steps; ``images()``
runs the catalog query and applies them to image descriptors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

import numpy as np
from rasterio.features import geometry_mask
from rasterio.warp import transform_geom
from shapely.geometry import mapping

from seasonalndvi._types import BandReader, FloatArray, Grid
from seasonalndvi.boundaries import Boundary
from seasonalndvi.exceptions import NotFoundError
from seasonalndvi.seasons import DateRange

logger = logging.getLogger(__name__)

# Image metadata key set when the catalog search behind an image hit its item cap.
TRUNCATED_KEY = "search_truncated"


@dataclass(frozen=True)
class Image:
    """One acquisition with deferred spectral bands.

    Args:
        image_id: Identifier unique within its collection.
        timestamp: UTC acquisition time.
        bands: Band name to deferred reader, in band order.
        metadata: Provider metadata (tile ids, platform, ...).

    Example:
        >>> img = Image("a", datetime(2022, 5, 1), {"red": lambda g: g.empty()})
        >>> img.band_names
        ['red']
    """

    image_id: str
    timestamp: datetime
    bands: Mapping[str, BandReader] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def band_names(self) -> list[str]:
        return list(self.bands)

    def read(self, band: str, grid: Grid) -> FloatArray:
        """Evaluate *band* on *grid*.

        Raises:
            NotFoundError: If the image has no such band.
        """
        reader = self.bands.get(band)
        if reader is None:
            raise NotFoundError(
                what=f"Band {band!r} not found in image {self.image_id}",
                cause=f"Available bands: {', '.join(self.bands) or 'none'}",
                fix="Select or derive the band before reading it",
            )
        return reader(grid)

    def select(self, *names: str) -> Image:
        """Return a copy holding only *names*, in that order.

        Raises:
            NotFoundError: If any name is not a band of this image.
        """
        missing = [n for n in names if n not in self.bands]
        if missing:
            raise NotFoundError(
                what=f"Bands {missing} not found in image {self.image_id}",
                cause=f"Available bands: {', '.join(self.bands) or 'none'}",
                fix="Check band names against the collection's assets",
            )
        return replace(self, bands={n: self.bands[n] for n in names})

    def add_bands(self, new_bands: Mapping[str, BandReader]) -> Image:
        """Return a copy with *new_bands* appended; existing bands are kept.

        Raises:
            ValueError: If a new band name already exists.
        """
        clash = [n for n in new_bands if n in self.bands]
        if clash:
            msg = f"Image {self.image_id} already has bands {clash}"
            raise ValueError(msg)
        merged = dict(self.bands)
        merged.update(new_bands)
        return replace(self, bands=merged)

    def rename(self, mapping: Mapping[str, str]) -> Image:
        """Return a copy with bands renamed by *mapping*, order preserved.

        Raises:
            NotFoundError: If a key of *mapping* is not a band.
            ValueError: If two bands would share a name.
        """
        missing = [n for n in mapping if n not in self.bands]
        if missing:
            raise NotFoundError(
                what=f"Bands {missing} not found in image {self.image_id}",
                cause=f"Available bands: {', '.join(self.bands) or 'none'}",
                fix="Check band names against the collection's assets",
            )
        renamed = {mapping.get(n, n): reader for n, reader in self.bands.items()}
        if len(renamed) != len(self.bands):
            msg = f"Renaming bands of {self.image_id} would merge bands"
            raise ValueError(msg)
        return replace(self, bands=renamed)


class CollectionSource(Protocol):
    """Catalog behind an ``ImageCollection`` plan."""

    collection_id: str

    def list_images(
        self,
        boundary: Boundary | None,
        date_range: DateRange | None,
    ) -> list[Image]:
        """Return image descriptors intersecting *boundary* in *date_range*."""
        ...


ImageStep = Callable[[Image], Image]


@dataclass(frozen=True)
class ImageCollection:
    """Unevaluated plan over a raster collection.

    Filters are pushed down to the source query; ``select`` and ``map``
    steps run per image, in the order they were added.

    Args:
        source: Catalog that enumerates images.
        boundary: Spatial filter, if any.
        date_range: Temporal filter, if any.
        steps: Per-image transforms applied after listing.
    """

    source: CollectionSource
    boundary: Boundary | None = None
    date_range: DateRange | None = None
    steps: tuple[ImageStep, ...] = ()

    @property
    def collection_id(self) -> str:
        return self.source.collection_id

    def filter_bounds(self, boundary: Boundary) -> ImageCollection:
        """Restrict to images intersecting *boundary*."""
        combined = (
            boundary if self.boundary is None else self.boundary.intersection(boundary)
        )
        return replace(self, boundary=combined)

    def filter_date(self, date_range: DateRange) -> ImageCollection:
        """Restrict to images acquired in *date_range*."""
        combined = (
            date_range
            if self.date_range is None
            else self.date_range.intersection(date_range)
        )
        return replace(self, date_range=combined)

    def select(self, *bands: str) -> ImageCollection:
        """Keep only *bands* on every image."""
        return replace(self, steps=(*self.steps, _Select(bands)))

    def map(self, fn: ImageStep) -> ImageCollection:
        """Apply *fn* to every image."""
        return replace(self, steps=(*self.steps, fn))

    def images(self) -> list[Image]:
        """Evaluate the plan into image descriptors sorted by timestamp.

        Queries the catalog; no pixels are read.
        """
        if self.date_range is not None and self.date_range.is_empty:
            return []

        listed = self.source.list_images(self.boundary, self.date_range)
        if self.date_range is not None:
            listed = [img for img in listed if self.date_range.contains(img.timestamp)]

        for step in self.steps:
            listed = [step(img) for img in listed]

        logger.debug(
            "Collection %s evaluated to %d images (range=%s)",
            self.collection_id,
            len(listed),
            self.date_range,
        )
        return sorted(listed, key=lambda img: (img.timestamp, img.image_id))

    def timestamps(self) -> list[datetime]:
        return [img.timestamp for img in self.images()]

    def size(self) -> int:
        return len(self.images())

    def __len__(self) -> int:
        return self.size()


@dataclass(frozen=True)
class _Select:
    bands: tuple[str, ...]

    def __call__(self, image: Image) -> Image:
        return image.select(*self.bands)


def clip_to_boundary(
    array: FloatArray,
    grid: Grid,
    boundary: Boundary,
) -> FloatArray:
    """Set pixels of *array* outside *boundary* to NaN.

    Args:
        array: 2-D array on *grid*.
        grid: Grid the array is aligned to.
        boundary: Region in EPSG:4326.

    Returns:
        A float array; the input is not modified.
    """
    if boundary.geometry.is_empty:
        return np.full(grid.shape, np.nan, dtype=np.float32)

    geometry = dict(mapping(boundary.geometry))
    if grid.crs.upper() != "EPSG:4326":
        geometry = transform_geom("EPSG:4326", grid.crs, geometry)

    outside = geometry_mask(
        [geometry],
        out_shape=grid.shape,
        transform=grid.transform,
    )
    clipped = array.astype(np.float32 if array.dtype != np.float64 else np.float64)
    clipped[outside] = np.nan
    return clipped
