"""Rendering of composites and NDVI time series.

Everything here is optional output: maps and charts are written to PNG
files with matplotlib (Agg backend), time series are pandas DataFrames.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from rasterio.warp import transform_geom
from shapely.geometry import mapping, shape

from seasonalndvi._types import Grid
from seasonalndvi.analysis.compositing import SeasonalComposite
from seasonalndvi.analysis.vegetation import NDVI_BAND
from seasonalndvi.boundaries import Boundary
from seasonalndvi.config import Config, get_default_config
from seasonalndvi.raster import ImageCollection, clip_to_boundary

if TYPE_CHECKING:
    import pandas as pd
    from matplotlib.colors import BoundaryNorm, ListedColormap

logger = logging.getLogger(__name__)

_HEX_COLOUR = re.compile(r"^[0-9A-Fa-f]{6}$")


class VisParams(BaseModel):
    """Discrete colour ramp for an NDVI layer.

    ``palette`` splits ``[min, max]`` into equal-width buckets, one per
    colour. Values below ``min`` take the first colour, values above
    ``max`` the last; NaN is transparent.

    Example:
        >>> NDVI_VIS.legend_entries()[0]
        ('<=0', '#A52A2A')
    """

    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    palette: tuple[str, ...]
    legend_labels: tuple[str, ...] = ()

    @field_validator("palette", mode="before")
    @classmethod
    def _normalise_palette(cls, v: Any) -> tuple[str, ...]:
        colours = tuple(str(c).lstrip("#") for c in v)
        bad = [c for c in colours if not _HEX_COLOUR.match(c)]
        if bad:
            msg = f"Palette entries must be 6-digit hex colours, got {bad}"
            raise ValueError(msg)
        if not colours:
            msg = "Palette must hold at least one colour"
            raise ValueError(msg)
        return colours

    @model_validator(mode="after")
    def _check_ranges(self) -> VisParams:
        if self.min >= self.max:
            msg = f"min ({self.min}) must be less than max ({self.max})"
            raise ValueError(msg)
        if self.legend_labels and len(self.legend_labels) != len(self.palette):
            msg = (
                f"{len(self.legend_labels)} legend labels for "
                f"{len(self.palette)} palette colours"
            )
            raise ValueError(msg)
        return self

    @property
    def colours(self) -> list[str]:
        return [f"#{c.upper()}" for c in self.palette]

    def boundaries(self) -> list[float]:
        """Bucket edges from ``min`` to ``max``."""
        edges = np.linspace(self.min, self.max, len(self.palette) + 1)
        return [round(float(e), 10) for e in edges]

    def legend_entries(self) -> list[tuple[str, str]]:
        """``(label, colour)`` pairs in palette order."""
        labels = self.legend_labels or tuple(
            f"{lo:g} - {hi:g}"
            for lo, hi in zip(self.boundaries()[:-1], self.boundaries()[1:])
        )
        return list(zip(labels, self.colours))

    def colormap(self) -> ListedColormap:
        from matplotlib.colors import ListedColormap

        cmap = ListedColormap(self.colours, name="ndvi")
        cmap.set_under(self.colours[0])
        cmap.set_over(self.colours[-1])
        cmap.set_bad(alpha=0.0)
        return cmap

    def norm(self) -> BoundaryNorm:
        from matplotlib.colors import BoundaryNorm

        return BoundaryNorm(self.boundaries(), ncolors=len(self.palette))


NDVI_VIS = VisParams(
    min=-0.1,
    max=0.5,
    palette=("A52A2A", "FF0000", "FFFF00", "228B22", "00FFFF", "0000FF"),
    legend_labels=(
        "<=0",
        "0 - 0.1",
        "0.1 - 0.2",
        "0.2 - 0.3",
        "0.3 - 0.4",
        "0.4 - 0.5",
    ),
)


@dataclass
class _Layer:
    composite: SeasonalComposite
    vis: VisParams
    name: str


@dataclass
class MapContext:
    """Collects layers for one rendered map.

    Args:
        boundary: Outline drawn on every panel; also fixes the map extent.
        title: Figure title.

    Example:
        >>> ctx = MapContext(india, title="NDVI 2022")
        >>> ctx.add_layer(summer, NDVI_VIS, "Summer NDVI")
        >>> ctx.render_png("ndvi.png", scale=5000)  # doctest: +SKIP
    """

    boundary: Boundary
    title: str = ""
    layers: list[_Layer] = field(default_factory=list)

    def add_layer(
        self,
        composite: SeasonalComposite,
        vis: VisParams = NDVI_VIS,
        name: str = "",
    ) -> MapContext:
        self.layers.append(_Layer(composite, vis, name or composite.name))
        return self

    def render_png(
        self,
        path: str | Path,
        scale: float | None = None,
        crs: str | None = None,
        *,
        config: Config | None = None,
    ) -> Path:
        """Evaluate every layer and write one panel per layer to *path*.

        Args:
            path: Output PNG path (created or overwritten).
            scale: Ground sample distance in metres; ``Config.export_scale_m``
                if ``None``.
            crs: Map CRS; ``Config.default_crs`` if ``None``.
            config: Configuration snapshot.

        Returns:
            Path of the written image.
        """
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        from matplotlib.patches import Patch

        cfg = config if config is not None else get_default_config()
        grid = Grid.from_bounds(
            self.boundary.bounds,
            scale or cfg.export_scale_m,
            crs or cfg.default_crs,
        )
        minx, miny, maxx, maxy = grid.bounds
        path = Path(path)

        panels = max(len(self.layers), 1)
        fig, axes = plt.subplots(1, panels, figsize=(7 * panels, 7), squeeze=False)

        if not self.layers:
            axes[0][0].text(
                0.5,
                0.5,
                "No layers",
                ha="center",
                va="center",
                fontsize=14,
                transform=axes[0][0].transAxes,
            )

        for ax, layer in zip(axes[0], self.layers):
            data = layer.composite.read(grid)
            ax.imshow(
                np.ma.masked_invalid(data),
                cmap=layer.vis.colormap(),
                norm=layer.vis.norm(),
                extent=(minx, maxx, miny, maxy),
                interpolation="nearest",
            )
            for xs, ys in _outline(self.boundary, grid.crs):
                ax.plot(xs, ys, color="black", linewidth=0.6)
            ax.set_title(layer.name)
            ax.set_xlim(minx, maxx)
            ax.set_ylim(miny, maxy)
            ax.legend(
                handles=[
                    Patch(facecolor=colour, label=label)
                    for label, colour in layer.vis.legend_entries()
                ],
                title=NDVI_BAND,
                loc="lower left",
                fontsize="small",
            )

        if self.title:
            fig.suptitle(self.title)
        plt.tight_layout()
        plt.savefig(path, dpi=150, bbox_inches="tight")
        plt.close(fig)

        logger.info("Rendered %d layer(s) to %s", len(self.layers), path)
        return path


def _outline(boundary: Boundary, crs: str) -> Iterator[tuple[list[float], list[float]]]:
    """Yield ``(xs, ys)`` rings of *boundary* in *crs*."""
    geometry = boundary.geometry
    if geometry.is_empty:
        return
    if crs.upper() != "EPSG:4326":
        geometry = shape(transform_geom("EPSG:4326", crs, mapping(geometry)))

    polygons = getattr(geometry, "geoms", [geometry])
    for polygon in polygons:
        if polygon.geom_type != "Polygon":
            continue
        rings = [polygon.exterior, *polygon.interiors]
        for ring in rings:
            xs, ys = ring.xy
            yield list(xs), list(ys)


def ndvi_time_series(
    collection: ImageCollection,
    boundary: Boundary,
    *,
    scale: float | None = None,
    crs: str | None = None,
    config: Config | None = None,
) -> pd.DataFrame:
    """Regional mean NDVI of every image in *collection*.

    Args:
        collection: Collection whose images carry an ``NDVI`` band.
        boundary: Region the mean is taken over.
        scale: Ground sample distance in metres; ``Config.chart_scale_m``
            if ``None``.
        crs: Sampling CRS; ``Config.default_crs`` if ``None``.
        config: Configuration snapshot.

    Returns:
        DataFrame with columns ``timestamp``, ``mean_ndvi`` and
        ``valid_pixels``, one row per image in time order.
    """
    import pandas as pd

    cfg = config if config is not None else get_default_config()
    grid = Grid.from_bounds(
        boundary.bounds,
        scale or cfg.chart_scale_m,
        crs or cfg.default_crs,
    )

    rows: list[dict[str, Any]] = []
    for image in collection.filter_bounds(boundary).images():
        data = clip_to_boundary(image.read(NDVI_BAND, grid), grid, boundary)
        valid = int(np.count_nonzero(~np.isnan(data)))
        rows.append({
            "timestamp": pd.Timestamp(image.timestamp),
            "mean_ndvi": float(np.nanmean(data)) if valid else float("nan"),
            "valid_pixels": valid,
        })

    logger.info("Sampled %d images for NDVI time series", len(rows))
    return pd.DataFrame(rows, columns=["timestamp", "mean_ndvi", "valid_pixels"])


def plot_time_series(
    frame: pd.DataFrame,
    path: str | Path,
    title: str = "NDVI Time Series",
) -> Path:
    """Write a line chart of ``frame`` (from ``ndvi_time_series``) to *path*."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    path = Path(path)
    fig, ax = plt.subplots(figsize=(12, 6))

    if frame.empty:
        ax.text(
            0.5,
            0.5,
            "No data available",
            ha="center",
            va="center",
            fontsize=14,
            transform=ax.transAxes,
        )
    else:
        ax.plot(
            frame["timestamp"],
            frame["mean_ndvi"],
            color="#228B22",
            marker="o",
            markersize=3,
            linewidth=1.5,
        )
        ax.grid(True, alpha=0.3)

    ax.set_title(title)
    ax.set_xlabel("Date")
    ax.set_ylabel("NDVI")
    fig.autofmt_xdate()

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path
