"""Result object model for evaluated composites."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, Field

from seasonalndvi._types import Grid

if TYPE_CHECKING:
    import pandas as pd

# ── NDVI interpretation thresholds ────────────────────────────────
_NDVI_HEALTHY_THRESHOLD: float = 0.6
_NDVI_MODERATE_THRESHOLD: float = 0.3
_NDVI_SPARSE_THRESHOLD: float = 0.1


def _interpret_ndvi(value: float) -> str:
    """Return plain-language interpretation of an NDVI value.

    Args:
        value: NDVI value (typically in [-1, 1]).

    Returns:
        Human-readable interpretation string.
    """
    if math.isnan(value):
        return "no data"
    if value >= _NDVI_HEALTHY_THRESHOLD:
        return "healthy vegetation"
    if value >= _NDVI_MODERATE_THRESHOLD:
        return "moderate vegetation"
    if value >= _NDVI_SPARSE_THRESHOLD:
        return "sparse/stressed vegetation"
    return "bare soil/water"


class ResultMetadata(BaseModel):
    """Metadata for evaluated composites.

    Uses Pydantic (not dataclass) for JSON serialization in exports.

    Attributes:
        source: Raster collection identifier.
        timestamps: ISO-8601 acquisition timestamps of images averaged.
        observation_count: Number of images averaged.
        crs: Coordinate reference system of the grid.
        bounds: Grid extent ``{"minx", "miny", "maxx", "maxy"}`` in CRS units.
        resolution_m: Requested ground sample distance in metres.
        bands: Band identifiers present in the result data.

    Example:
        >>> meta = ResultMetadata(source="modis-09A1-061", observation_count=3)
        >>> meta.source
        'modis-09A1-061'
    """

    source: str = ""
    timestamps: list[str] = Field(default_factory=list)
    observation_count: int = 0
    crs: str = ""
    bounds: dict[str, float] = Field(default_factory=dict)
    resolution_m: float | None = None
    bands: list[str] = Field(default_factory=list)


@dataclass
class CompositeResult:
    """Evaluated seasonal composite.

    Dataclass (not Pydantic) because the numpy array is the payload.

    Attributes:
        data: 2-D NDVI array on ``grid``; NaN is no-data.
        grid: Grid the array is aligned to.
        name: Season or layer name.
        metadata: Source, timestamps and grid description.
        warnings: Human-readable availability warnings.

    Example:
        >>> grid = Grid.from_bounds((70.0, 20.0, 71.0, 21.0), scale=50_000)
        >>> result = CompositeResult(data=np.full(grid.shape, 0.5), grid=grid)
        >>> result.mean_ndvi
        0.5
    """

    data: npt.NDArray[np.floating[Any]]
    grid: Grid
    name: str = ""
    metadata: ResultMetadata = field(default_factory=ResultMetadata)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid_pixels(self) -> int:
        return int(np.count_nonzero(~np.isnan(self.data)))

    @property
    def mean_ndvi(self) -> float:
        """Spatial mean over valid pixels (NaN if there are none)."""
        if self.valid_pixels == 0:
            return float("nan")
        return float(np.nanmean(self.data))

    @property
    def ndvi_std(self) -> float:
        if self.valid_pixels == 0:
            return float("nan")
        return float(np.nanstd(self.data))

    def __repr__(self) -> str:
        """Return narrative summary for interactive display.

        Does NOT show raw arrays or full metadata dictionaries.
        """
        lines: list[str] = [f"{type(self).__name__}("]
        if self.name:
            lines.append(f"  name: {self.name}")

        ts = self.metadata.timestamps
        if ts:
            lines.append(f"  period: {ts[0][:10]} → {ts[-1][:10]}")

        lines.append(f"  observations: {self.metadata.observation_count}")
        lines.append(
            f"  grid: {self.grid.width}x{self.grid.height} {self.grid.crs}"
        )

        mean = self.mean_ndvi
        if math.isnan(mean):
            lines.append("  mean_ndvi: N/A (no valid data)")
        else:
            lines.append(
                f"  mean_ndvi: {mean:.2f} ± {self.ndvi_std:.2f}"
                f" ({_interpret_ndvi(mean)})"
            )

        for w in self.warnings:
            lines.append(f"  ⚠ {w}")

        lines.append(")")
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Summarise the composite as a one-row pandas DataFrame."""
        import pandas as pd

        row: dict[str, Any] = {
            "name": self.name,
            "source": self.metadata.source,
            "observation_count": self.metadata.observation_count,
            "crs": self.metadata.crs,
            "resolution_m": self.metadata.resolution_m,
            "valid_pixels": self.valid_pixels,
            "mean_ndvi": self.mean_ndvi,
        }
        if self.metadata.timestamps:
            row["period_start"] = self.metadata.timestamps[0]
            row["period_end"] = self.metadata.timestamps[-1]
        if self.valid_pixels:
            row["ndvi_min"] = float(np.nanmin(self.data))
            row["ndvi_max"] = float(np.nanmax(self.data))
        return pd.DataFrame([row])

    def _profile(self) -> dict[str, Any]:
        return {
            "driver": "GTiff",
            "height": self.grid.height,
            "width": self.grid.width,
            "count": 1,
            "dtype": "float32",
            "crs": self.grid.crs,
            "transform": self.grid.transform,
            "nodata": float("nan"),
            "compress": "deflate",
        }

    def _write(self, dst: Any) -> None:
        dst.write(self.data.astype(np.float32), 1)
        band = self.metadata.bands[0] if self.metadata.bands else "NDVI"
        dst.set_band_description(1, band)
        dst.update_tags(
            name=self.name,
            source=self.metadata.source,
            observation_count=str(self.metadata.observation_count),
        )

    def to_geotiff(self, path: str | Path) -> Path:
        """Export the composite to a GeoTIFF file.

        Args:
            path: Output file path (will be created/overwritten).

        Returns:
            Path object pointing to the written file.
        """
        import rasterio

        path = Path(path)
        with rasterio.open(path, "w", **self._profile()) as dst:
            self._write(dst)
        return path

    def to_geotiff_bytes(self) -> bytes:
        """Encode the composite as GeoTIFF bytes in memory."""
        from rasterio.io import MemoryFile

        with MemoryFile() as memfile:
            with memfile.open(**self._profile()) as dst:
                self._write(dst)
            memfile.seek(0)
            return bytes(memfile.read())
