"""Opening raster collections as deferred image-collection plans."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from seasonalndvi.boundaries import Boundary
from seasonalndvi.config import Config, get_default_config
from seasonalndvi.exceptions import NotFoundError
from seasonalndvi.providers import get_provider
from seasonalndvi.providers.base import DataProvider
from seasonalndvi.raster import Image, ImageCollection
from seasonalndvi.seasons import DateRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCollectionSource:
    """Adapts a ``DataProvider`` collection to the ``CollectionSource`` protocol."""

    provider: DataProvider
    collection_id: str

    def list_images(
        self,
        boundary: Boundary | None,
        date_range: DateRange | None,
    ) -> list[Image]:
        return self.provider.list_images(self.collection_id, boundary, date_range)


def open_collection(
    collection_id: str,
    boundary: Boundary,
    bands: Sequence[str],
    *,
    provider: str | DataProvider = "planetary-computer",
    config: Config | None = None,
) -> ImageCollection:
    """Open *collection_id* restricted to *boundary* and *bands*.

    The collection is resolved immediately so a bad identifier fails
    before any composite is planned. Images are not listed until a sink
    evaluates the plan. No temporal filter is applied.

    Args:
        collection_id: Raster collection identifier.
        boundary: Spatial filter.
        bands: Bands every image should hold.
        provider: Provider name or instance.
        config: Configuration snapshot; the module default if ``None``.

    Returns:
        An unevaluated ``ImageCollection``.

    Raises:
        CollectionNotFoundError: If the collection does not exist.
        SourceUnavailableError: If the provider cannot be reached.
        NotFoundError: If a requested band is not offered.

    Example:
        >>> modis = open_collection(
        ...     "modis-09A1-061", india, ["sur_refl_b01", "sur_refl_b02"]
        ... )  # doctest: +SKIP
    """
    cfg = config if config is not None else get_default_config()
    backend = provider if isinstance(provider, DataProvider) else get_provider(provider, cfg)

    info = backend.describe_collection(collection_id)
    if info.bands:
        missing = [b for b in bands if b not in info.bands]
        if missing:
            raise NotFoundError(
                what=f"Bands {missing} not found in collection {collection_id!r}",
                cause=f"Available bands: {', '.join(info.bands)}",
                fix="Check band names against the collection's assets",
            )

    logger.info(
        "Opened %s via %s with bands %s", collection_id, backend.name, list(bands)
    )
    source = ProviderCollectionSource(provider=backend, collection_id=collection_id)
    return ImageCollection(source=source).filter_bounds(boundary).select(*bands)
