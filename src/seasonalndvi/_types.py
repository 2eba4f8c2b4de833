"""Internal shared types for cross-boundary data contracts.

These types define the shapes passed between provider, raster and
analysis components. ``Grid`` is re-exported from the package root;
the aliases are internal.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt
from rasterio.crs import CRS
from rasterio.transform import Affine, from_origin
from rasterio.warp import transform_bounds

Bounds = tuple[float, float, float, float]
"""``(minx, miny, maxx, maxy)`` bounding box."""

FloatArray = npt.NDArray[np.floating[Any]]

METRES_PER_DEGREE: float = 111_320.0
"""Approximate length of one degree of latitude, used to express a
metric ground sample distance in geographic CRS units."""


@dataclass(frozen=True)
class Grid:
    """Pixel grid a deferred raster is evaluated on.

    Every sink (compute, export, chart, render) chooses a grid; band
    readers resample their source data onto it.

    Args:
        crs: Coordinate reference system string (``"EPSG:<code>"``).
        transform: Affine transform of the upper-left pixel corner.
        width: Number of columns.
        height: Number of rows.

    Example:
        >>> grid = Grid.from_bounds((68.0, 6.0, 98.0, 36.0), scale=5000)
        >>> grid.shape
        (668, 668)
    """

    crs: str
    transform: Affine
    width: int
    height: int

    @classmethod
    def from_bounds(
        cls,
        bounds: Bounds,
        scale: float,
        crs: str = "EPSG:4326",
    ) -> Grid:
        """Build a grid covering lon/lat *bounds* at *scale* metres per pixel.

        Bounds are given in EPSG:4326. For a projected *crs* they are
        transformed first and *scale* is used directly in CRS units; for
        a geographic *crs* it is converted to degrees.

        Args:
            bounds: ``(min_lon, min_lat, max_lon, max_lat)``.
            scale: Ground sample distance in metres. Must be positive.
            crs: Target CRS.

        Returns:
            Grid with at least one row and one column.

        Raises:
            ValueError: If *scale* is not positive.
        """
        if scale <= 0:
            msg = f"scale must be greater than 0, got {scale}"
            raise ValueError(msg)

        target = CRS.from_string(crs)
        if target.is_geographic:
            minx, miny, maxx, maxy = bounds
            resolution = scale / METRES_PER_DEGREE
        else:
            minx, miny, maxx, maxy = transform_bounds("EPSG:4326", target, *bounds)
            resolution = scale

        width = max(1, math.ceil((maxx - minx) / resolution))
        height = max(1, math.ceil((maxy - miny) / resolution))
        transform = from_origin(minx, maxy, resolution, resolution)
        return cls(crs=crs, transform=transform, width=width, height=height)

    @property
    def shape(self) -> tuple[int, int]:
        """Array shape ``(height, width)``."""
        return (self.height, self.width)

    @property
    def resolution(self) -> float:
        """Pixel size in CRS units."""
        return float(self.transform.a)

    @property
    def bounds(self) -> Bounds:
        """Grid extent ``(minx, miny, maxx, maxy)`` in CRS units."""
        minx = self.transform.c
        maxy = self.transform.f
        maxx = minx + self.width * self.transform.a
        miny = maxy + self.height * self.transform.e
        return (minx, miny, maxx, maxy)

    def empty(self) -> FloatArray:
        """Return an all-NaN float32 array of this grid's shape."""
        return np.full(self.shape, np.nan, dtype=np.float32)


BandReader = Callable[[Grid], FloatArray]
"""Deferred band: called with a grid, returns a 2-D float array on it."""
