"""Top-level pipeline: region, collection, NDVI, one composite per season.

Example:
    >>> import seasonalndvi as sn
    >>> run = sn.seasonal_ndvi()  # doctest: +SKIP
    >>> run.composites["summer"].compute(scale=5000)  # doctest: +SKIP
    >>> with sn.Exporter(sn.LocalDestination("out")) as exporter:
    ...     handles = run.export(exporter)  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import requests

from seasonalndvi.analysis.compositing import SeasonalComposite, composite
from seasonalndvi.analysis.vegetation import MODIS_NIR, MODIS_RED, ndvi_collection
from seasonalndvi.boundaries import Boundary, select_region
from seasonalndvi.config import Config, get_default_config
from seasonalndvi.exceptions import NotFoundError
from seasonalndvi.export import Exporter, ExportHandle
from seasonalndvi.presentation import (
    NDVI_VIS,
    MapContext,
    ndvi_time_series,
    plot_time_series,
)
from seasonalndvi.providers.base import DataProvider
from seasonalndvi.raster import ImageCollection
from seasonalndvi.seasons import SEASONS_2022, DateRange
from seasonalndvi.sources import open_collection

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)

INDIA_REGION: dict[str, Any] = {
    "dataset_id": "naturalearth/admin0",
    "attribute": "ADMIN",
    "value": "India",
}
"""Region filter for the default run."""

MODIS_COLLECTION = "modis-09A1-061"


@dataclass
class SeasonalRun:
    """Lazy products of one ``seasonal_ndvi`` call.

    Attributes:
        boundary: Resolved region.
        collection: NDVI-mapped collection over the region (no date filter).
        composites: Season name to planned composite, in season order.
        config: Configuration captured when the run was built.
    """

    boundary: Boundary
    collection: ImageCollection
    composites: dict[str, SeasonalComposite] = field(default_factory=dict)
    config: Config = field(default_factory=get_default_config)

    def _composite(self, season: str) -> SeasonalComposite:
        try:
            return self.composites[season]
        except KeyError:
            raise NotFoundError(
                what=f"Unknown season: {season!r}",
                cause=f"This run has seasons: {', '.join(self.composites)}",
                fix="Pass one of the season names given to seasonal_ndvi()",
            ) from None

    def export(
        self,
        exporter: Exporter,
        *,
        scale: float | None = None,
        crs: str | None = None,
        folder: str | None = None,
    ) -> dict[str, ExportHandle]:
        """Submit one export per season and return the handles by season.

        Files are named ``<Season>_NDVI_<year>``, e.g. ``Summer_NDVI_2022``.
        """
        handles: dict[str, ExportHandle] = {}
        for name, planned in self.composites.items():
            export_name = f"{name.title()}_NDVI_{planned.date_range.start.year}"
            handles[name] = exporter.export(
                planned,
                export_name,
                scale or self.config.export_scale_m,
                crs or self.config.default_crs,
                self.boundary,
                folder=folder or self.config.export_folder,
            )
        return handles

    def time_series(self, season: str | None = None, **kwargs: Any) -> pd.DataFrame:
        """Regional mean NDVI per image, for one season or the whole collection."""
        collection = self.collection
        if season is not None:
            collection = collection.filter_date(self._composite(season).date_range)
        kwargs.setdefault("config", self.config)
        return ndvi_time_series(collection, self.boundary, **kwargs)

    def season_charts(
        self,
        output_dir: str | Path,
        *,
        scale: float | None = None,
    ) -> dict[str, Path]:
        """Write one time-series PNG and CSV per season into *output_dir*.

        Each chart covers only its season's date range and is titled
        ``"<Season> NDVI Time Series"``.

        Returns:
            Season name to chart path.
        """
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        charts: dict[str, Path] = {}
        for name in self.composites:
            frame = self.time_series(name, scale=scale)
            frame.to_csv(out / f"{name}_ndvi_time_series.csv", index=False)
            charts[name] = plot_time_series(
                frame,
                out / f"{name}_ndvi_time_series.png",
                title=f"{name.title()} NDVI Time Series",
            )
            logger.info("Charted %d %s images", len(frame), name)
        return charts

    def map_context(self, title: str = "Seasonal NDVI") -> MapContext:
        """A ``MapContext`` holding every season's composite."""
        context = MapContext(self.boundary, title=title)
        for name, planned in self.composites.items():
            context.add_layer(planned, NDVI_VIS, f"{name.title()} NDVI")
        return context


def seasonal_ndvi(
    *,
    region: Mapping[str, Any] | Boundary = INDIA_REGION,
    collection_id: str = MODIS_COLLECTION,
    seasons: Mapping[str, DateRange] = SEASONS_2022,
    red: str = MODIS_RED,
    nir: str = MODIS_NIR,
    provider: str | DataProvider = "planetary-computer",
    config: Config | None = None,
    session: requests.Session | None = None,
) -> SeasonalRun:
    """Plan seasonal mean-NDVI composites over a region.

    Resolves the region and collection immediately; no pixels are read
    until a composite is computed, rendered or exported.

    Args:
        region: ``select_region`` keyword arguments, or a ready ``Boundary``.
        collection_id: Raster collection holding *red* and *nir*.
        seasons: Season name to half-open date range.
        red: Red band name.
        nir: Near-infrared band name.
        provider: Provider name or instance.
        config: Configuration snapshot; the module default if ``None``.
        session: HTTP session used to fetch the region dataset.

    Returns:
        A ``SeasonalRun`` with one composite per season.

    Raises:
        NotFoundError: If the region, collection or bands do not exist.
        AmbiguousRegionError: If the region filter matches several features
            and the union policy is disabled.
        SourceUnavailableError: If a data source cannot be reached.
    """
    cfg = config if config is not None else get_default_config()

    if isinstance(region, Boundary):
        boundary = region
    else:
        boundary = select_region(**region, config=cfg, session=session)
    logger.info("Region resolved: %r", boundary)

    source = open_collection(
        collection_id, boundary, [red, nir], provider=provider, config=cfg
    )
    ndvi = ndvi_collection(source, red=red, nir=nir)

    composites = {
        name: composite(ndvi, date_range, boundary, name=name)
        for name, date_range in seasons.items()
    }
    return SeasonalRun(
        boundary=boundary,
        collection=ndvi,
        composites=composites,
        config=cfg,
    )
