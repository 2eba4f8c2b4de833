"""Provider interface contract and shared types.

Defines the ``DataProvider`` abstract base class and the catalog types
used across raster data source implementations.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests
from shapely.geometry import shape

from seasonalndvi._types import BandReader, Bounds, FloatArray, Grid
from seasonalndvi.boundaries import Boundary
from seasonalndvi.config import Config
from seasonalndvi.raster import TRUNCATED_KEY, Image
from seasonalndvi.seasons import DateRange

logger = logging.getLogger(__name__)

_GLOBAL_BOUNDS: Bounds = (-180.0, -90.0, 180.0, 90.0)


@dataclass
class CollectionInfo:
    """Description of a raster collection.

    Args:
        collection_id: Provider collection identifier.
        title: Human-readable title.
        bands: Band (asset) names advertised by the collection. Empty when
            the provider does not advertise them.

    Example:
        >>> info = CollectionInfo("modis-09A1-061", bands=["sur_refl_b01"])
        >>> info.bands
        ['sur_refl_b01']
    """

    collection_id: str
    title: str = ""
    bands: list[str] = field(default_factory=list)


@dataclass
class CatalogEntry:
    """One granule returned by ``DataProvider.search()``.

    Args:
        provider: Provider name.
        product_id: Provider-specific unique identifier.
        timestamp: ISO-8601 acquisition timestamp.
        geometry: GeoJSON footprint in EPSG:4326.
        assets: Band name to data URL.
        metadata: Additional provider-specific metadata.

    Example:
        >>> entry = CatalogEntry(
        ...     provider="planetary-computer",
        ...     product_id="MOD09A1.A2022121.h24v06.061",
        ...     timestamp="2022-05-01T00:00:00Z",
        ...     assets={"sur_refl_b01": "https://example.com/b01.tif"},
        ... )
    """

    provider: str = ""
    product_id: str = ""
    timestamp: str = ""
    geometry: dict[str, Any] = field(default_factory=dict)
    assets: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def acquired(self) -> datetime:
        """Acquisition time as an aware UTC datetime."""
        moment = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc)


@dataclass
class ProviderStatus:
    """Operational status of a data provider.

    Args:
        available: ``True`` if the provider is operational.
        message: Human-readable status message (empty when healthy).
    """

    available: bool = False
    message: str = ""


class DataProvider(ABC):
    """Abstract base class for raster collection providers.

    Subclasses implement catalog description, search, band reading and
    status checking, and set the ``_name`` class attribute. The shared
    ``list_images`` turns catalog entries into deferred ``Image`` objects.

    Args:
        config: Frozen configuration snapshot for this provider instance.
    """

    _name: str = ""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._session: requests.Session | None = None

    @property
    def name(self) -> str:
        """Provider identifier used in the registry."""
        return self._name

    @abstractmethod
    def describe_collection(self, collection_id: str) -> CollectionInfo:
        """Resolve a collection identifier.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
            SourceUnavailableError: If the provider cannot be reached.
        """
        ...

    @abstractmethod
    def search(
        self,
        collection_id: str,
        bounds: Bounds,
        date_range: DateRange | None,
        **params: Any,
    ) -> list[CatalogEntry]:
        """Search the catalog for granules.

        Returns an empty list when nothing matches. Never raises on missing
        data, only on infrastructure failures.

        Args:
            collection_id: Collection to search.
            bounds: ``(min_lon, min_lat, max_lon, max_lat)``.
            date_range: Temporal filter, or ``None`` for all time.
            **params: Provider-specific search parameters.
        """
        ...

    @abstractmethod
    def read_band(
        self,
        entries: list[CatalogEntry],
        band: str,
        grid: Grid,
    ) -> FloatArray:
        """Read *band* of *entries* onto *grid*, mosaicking granules.

        Pixels no granule covers, and source no-data, are NaN.

        Raises:
            SourceUnavailableError: If the data cannot be fetched.
        """
        ...

    @abstractmethod
    def check_status(self) -> ProviderStatus:
        """Check provider operational status. Never raises."""
        ...

    def list_images(
        self,
        collection_id: str,
        boundary: Boundary | None,
        date_range: DateRange | None,
    ) -> list[Image]:
        """Return one deferred image per acquisition time.

        Granules whose footprint does not intersect *boundary* are dropped.
        Granules sharing a timestamp (tiles of one acquisition) become one
        image whose bands mosaic them.
        """
        bounds = boundary.bounds if boundary is not None else _GLOBAL_BOUNDS
        entries = self.search(collection_id, bounds, date_range)

        if boundary is not None:
            entries = [
                e for e in entries
                if not e.geometry or shape(e.geometry).intersects(boundary.geometry)
            ]

        groups: dict[datetime, list[CatalogEntry]] = defaultdict(list)
        for entry in entries:
            groups[entry.acquired].append(entry)

        images = [
            self._make_image(collection_id, acquired, tiles)
            for acquired, tiles in groups.items()
        ]
        logger.debug(
            "%s: %d granules grouped into %d images",
            collection_id,
            len(entries),
            len(images),
        )
        return images

    def _make_image(
        self,
        collection_id: str,
        acquired: datetime,
        tiles: list[CatalogEntry],
    ) -> Image:
        band_names: list[str] = []
        for tile in tiles:
            band_names.extend(b for b in tile.assets if b not in band_names)

        bands: dict[str, BandReader] = {
            band: self._band_reader(tiles, band) for band in band_names
        }
        metadata: dict[str, Any] = {"granules": [t.product_id for t in tiles]}
        truncated = [
            t.metadata[TRUNCATED_KEY] for t in tiles if TRUNCATED_KEY in t.metadata
        ]
        if truncated:
            metadata[TRUNCATED_KEY] = int(truncated[0])
        return Image(
            image_id=f"{collection_id}/{acquired.strftime('%Y%m%dT%H%M%S')}",
            timestamp=acquired,
            bands=bands,
            metadata=metadata,
        )

    def _band_reader(self, tiles: list[CatalogEntry], band: str) -> BandReader:
        covering = [t for t in tiles if band in t.assets]

        def _read(grid: Grid) -> FloatArray:
            return self.read_band(covering, band, grid)

        return _read
