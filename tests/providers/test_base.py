"""Tests for the DataProvider contract and its shared image listing."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import numpy as np
import pytest
from shapely.geometry import box, mapping

from seasonalndvi._types import Grid
from seasonalndvi.boundaries import Boundary
from seasonalndvi.providers.base import CatalogEntry, DataProvider, ProviderStatus
from seasonalndvi.seasons import SUMMER_2022

RED = "sur_refl_b01"


@pytest.mark.unit
class TestDataProviderAbstract:
    """Verify DataProvider cannot be instantiated directly."""

    def test_abstract(self) -> None:
        with pytest.raises(TypeError):
            DataProvider(config=None)  # type: ignore[abstract,arg-type]


@pytest.mark.unit
class TestCatalogEntry:
    """Verify catalog entry parsing helpers."""

    def test_acquired_parses_z_suffix(self) -> None:
        entry = CatalogEntry(timestamp="2022-05-01T10:30:00Z")
        assert entry.acquired == datetime(2022, 5, 1, 10, 30, tzinfo=timezone.utc)

    def test_acquired_naive_taken_as_utc(self) -> None:
        entry = CatalogEntry(timestamp="2022-05-01T00:00:00")
        assert entry.acquired.tzinfo == timezone.utc

    def test_provider_status_defaults(self) -> None:
        assert ProviderStatus().available is False


@pytest.mark.unit
class TestListImages:
    """Verify granules become deferred images."""

    def test_tiles_of_one_acquisition_grouped(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(entries=[
            entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6, product_id="h24v06"),
            entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6, product_id="h25v06"),
            entry_factory("2022-05-09T00:00:00Z", 0.1, 0.3, product_id="h24v06b"),
        ])
        images = provider.list_images("modis", test_boundary, SUMMER_2022)

        assert len(images) == 2
        first = next(img for img in images if img.timestamp.day == 1)
        assert first.metadata["granules"] == ["h24v06", "h25v06"]
        assert first.image_id == "modis/20220501T000000"
        assert first.band_names == [RED, "sur_refl_b02"]

    def test_listing_reads_no_pixels(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(entries=[
            entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6),
        ])
        provider.list_images("modis", test_boundary, SUMMER_2022)
        assert sum(provider.reads.values()) == 0

    def test_band_reader_calls_read_band(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        provider = provider_factory(entries=[
            entry_factory("2022-05-01T00:00:00Z", 0.2, 0.6),
        ])
        image = provider.list_images("modis", test_boundary, SUMMER_2022)[0]
        data = image.read(RED, test_grid)
        assert np.allclose(data, 0.2)
        assert provider.reads[RED] == 1

    def test_footprints_outside_boundary_dropped(
        self,
        provider_factory: type,
        entry_factory: Callable[..., CatalogEntry],
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory(entries=[
            entry_factory(
                "2022-05-01T00:00:00Z", 0.2, 0.6, geometry=mapping(box(70.5, 20.5, 72, 22))
            ),
            entry_factory(
                "2022-05-09T00:00:00Z", 0.2, 0.6, geometry=mapping(box(80, 30, 81, 31))
            ),
        ])
        images = provider.list_images("modis", test_boundary, SUMMER_2022)
        assert [img.timestamp.day for img in images] == [1]

    def test_search_uses_boundary_bounds(
        self,
        provider_factory: type,
        test_boundary: Boundary,
    ) -> None:
        provider = provider_factory()
        provider.list_images("modis", test_boundary, None)
        assert provider.searches == [("modis", (70.0, 20.0, 71.0, 21.0), None)]

    def test_no_boundary_searches_globally(self, provider_factory: type) -> None:
        provider = provider_factory()
        provider.list_images("modis", None, None)
        assert provider.searches[0][1] == (-180.0, -90.0, 180.0, 90.0)
