"""seasonalndvi: seasonal mean-NDVI composites over administrative regions.

Example:
    >>> import seasonalndvi as sn
    >>>
    >>> # India, MODIS surface reflectance, summer and monsoon 2022
    >>> run = sn.seasonal_ndvi()
    >>> print(run.composites["summer"].compute(scale=5000))
    >>>
    >>> # Export both seasons to a local folder
    >>> with sn.Exporter(sn.LocalDestination("exports")) as exporter:
    ...     handles = run.export(exporter)
"""

from seasonalndvi.__about__ import __version__
from seasonalndvi.analysis import (
    NDVI_BAND,
    SeasonalComposite,
    composite,
    compute_ndvi,
    derive_ndvi,
    ndvi_collection,
    temporal_mean,
)
from seasonalndvi.api import SeasonalRun, seasonal_ndvi
from seasonalndvi.boundaries import Boundary, select_region
from seasonalndvi.config import Config, configure
from seasonalndvi.destinations import (
    Destination,
    DriveDestination,
    LocalDestination,
    get_destination,
)
from seasonalndvi.exceptions import (
    AmbiguousRegionError,
    CollectionNotFoundError,
    ConfigurationError,
    ExportFailureError,
    NotFoundError,
    SeasonalNdviError,
    SourceUnavailableError,
)
from seasonalndvi.export import Exporter, ExportHandle, ExportStatus
from seasonalndvi.presentation import (
    NDVI_VIS,
    MapContext,
    VisParams,
    ndvi_time_series,
    plot_time_series,
)
from seasonalndvi.raster import Image, ImageCollection
from seasonalndvi.results import CompositeResult, ResultMetadata
from seasonalndvi.seasons import MONSOON_2022, SUMMER_2022, DateRange
from seasonalndvi.sources import open_collection

__all__ = [
    # Version
    "__version__",
    # Pipeline
    "SeasonalRun",
    "seasonal_ndvi",
    # Region and seasons
    "Boundary",
    "select_region",
    "DateRange",
    "SUMMER_2022",
    "MONSOON_2022",
    # Collections
    "Image",
    "ImageCollection",
    "open_collection",
    # NDVI and compositing
    "NDVI_BAND",
    "SeasonalComposite",
    "composite",
    "compute_ndvi",
    "derive_ndvi",
    "ndvi_collection",
    "temporal_mean",
    # Results
    "CompositeResult",
    "ResultMetadata",
    # Export
    "Destination",
    "DriveDestination",
    "LocalDestination",
    "get_destination",
    "Exporter",
    "ExportHandle",
    "ExportStatus",
    # Presentation
    "NDVI_VIS",
    "MapContext",
    "VisParams",
    "ndvi_time_series",
    "plot_time_series",
    # Configuration
    "Config",
    "configure",
    # Exceptions
    "AmbiguousRegionError",
    "CollectionNotFoundError",
    "ConfigurationError",
    "ExportFailureError",
    "NotFoundError",
    "SeasonalNdviError",
    "SourceUnavailableError",
]
