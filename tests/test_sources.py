"""Tests for opening collections as deferred plans."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from seasonalndvi.boundaries import Boundary
from seasonalndvi.exceptions import CollectionNotFoundError, NotFoundError
from seasonalndvi.providers import register_provider
from seasonalndvi.providers.base import CatalogEntry, CollectionInfo
from seasonalndvi.sources import ProviderCollectionSource, open_collection

RED, NIR = "sur_refl_b01", "sur_refl_b02"


@pytest.mark.unit
class TestOpenCollection:
    """Verify open_collection resolves eagerly and evaluates lazily."""

    def test_returns_unevaluated_plan(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(entries=[entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6)])

        plan = open_collection("modis", test_boundary, [RED, NIR], provider=provider)

        assert provider.searches == []
        assert plan.boundary == test_boundary
        assert plan.date_range is None
        assert isinstance(plan.source, ProviderCollectionSource)
        assert plan.collection_id == "modis"

    def test_selects_requested_bands(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(entries=[entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6)])
        plan = open_collection("modis", test_boundary, [NIR], provider=provider)
        assert plan.images()[0].band_names == [NIR]

    def test_unknown_band(
        self,
        provider_factory: type,
        test_boundary: Boundary,
    ) -> None:
        with pytest.raises(NotFoundError, match="B8"):
            open_collection("modis", test_boundary, [RED, "B8"], provider=provider_factory())

    def test_unadvertised_bands_accepted(
        self,
        provider_factory: type,
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(bands=[])
        plan = open_collection("modis", test_boundary, ["anything"], provider=provider)
        assert plan.collection_id == "modis"

    def test_unknown_collection_propagates(
        self,
        provider_factory: type,
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory()

        def _missing(collection_id: str) -> CollectionInfo:
            raise CollectionNotFoundError(what=f"Raster collection not found: {collection_id}")

        provider.describe_collection = _missing
        with pytest.raises(NotFoundError):
            open_collection("MODIS/006/MOD09A1", test_boundary, [RED], provider=provider)

    def test_provider_by_name(
        self,
        provider_factory: type,
        test_boundary: Boundary,
    ) -> None:
        register_provider("fake", provider_factory)
        plan = open_collection("modis", test_boundary, [RED, NIR], provider="fake")
        assert plan.source.provider.name == "fake"  # type: ignore[attr-defined]
