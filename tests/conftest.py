"""Shared test fixtures for the seasonalndvi test suite."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import numpy as np
import pytest
from shapely.geometry import box

from seasonalndvi._types import METRES_PER_DEGREE, Bounds, FloatArray, Grid
from seasonalndvi.boundaries import Boundary
from seasonalndvi.config import Config
from seasonalndvi.providers.base import (
    CatalogEntry,
    CollectionInfo,
    DataProvider,
    ProviderStatus,
)
from seasonalndvi.raster import Image
from seasonalndvi.seasons import DateRange

RED = "sur_refl_b01"
NIR = "sur_refl_b02"

# One test pixel is a quarter degree.
QUARTER_DEGREE_M = METRES_PER_DEGREE / 4


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


class InMemorySource:
    """``CollectionSource`` over prebuilt images; counts pixel reads."""

    def __init__(self, images: list[Image], collection_id: str = "test-collection"):
        self.collection_id = collection_id
        self._images = images
        self.list_calls: list[tuple[Boundary | None, DateRange | None]] = []

    def list_images(
        self,
        boundary: Boundary | None,
        date_range: DateRange | None,
    ) -> list[Image]:
        self.list_calls.append((boundary, date_range))
        return list(self._images)


class FakeProvider(DataProvider):
    """Provider whose asset hrefs encode a constant reflectance (``const:0.3``)."""

    _name = "fake"

    def __init__(
        self,
        config: Config | None = None,
        entries: list[CatalogEntry] | None = None,
        bands: list[str] | None = None,
    ) -> None:
        super().__init__(config=config or Config())
        self.entries = entries or []
        self.bands = [RED, NIR] if bands is None else bands
        self.reads: Counter[str] = Counter()
        self.searches: list[tuple[str, Bounds, DateRange | None]] = []

    def describe_collection(self, collection_id: str) -> CollectionInfo:
        return CollectionInfo(collection_id, title="Fake", bands=list(self.bands))

    def search(
        self,
        collection_id: str,
        bounds: Bounds,
        date_range: DateRange | None,
        **params: Any,
    ) -> list[CatalogEntry]:
        self.searches.append((collection_id, bounds, date_range))
        if date_range is None:
            return list(self.entries)
        return [e for e in self.entries if date_range.contains(e.acquired)]

    def read_band(
        self,
        entries: list[CatalogEntry],
        band: str,
        grid: Grid,
    ) -> FloatArray:
        self.reads[band] += 1
        value = float(entries[0].assets[band].split(":", 1)[1])
        return np.full(grid.shape, value, dtype=np.float32)

    def check_status(self) -> ProviderStatus:
        return ProviderStatus(available=True)


def make_entry(
    when: str,
    red: float,
    nir: float,
    *,
    geometry: Mapping[str, Any] | None = None,
    product_id: str | None = None,
) -> CatalogEntry:
    """Catalog entry whose red and NIR bands read as constants."""
    return CatalogEntry(
        provider="fake",
        product_id=product_id or f"granule-{when}",
        timestamp=when,
        geometry=dict(geometry) if geometry is not None else {},
        assets={RED: f"const:{red}", NIR: f"const:{nir}"},
    )


@pytest.fixture
def test_config() -> Config:
    """Return a fresh default Config instance for test isolation."""
    return Config()


@pytest.fixture
def test_boundary() -> Boundary:
    """A one-degree square region."""
    return Boundary(
        geometry=box(70.0, 20.0, 71.0, 21.0),
        dataset_id="test",
        attribute="ADMIN",
        value="Testland",
    )


@pytest.fixture
def test_grid(test_boundary: Boundary) -> Grid:
    """4x4 grid over ``test_boundary``."""
    return Grid.from_bounds(test_boundary.bounds, QUARTER_DEGREE_M)


@pytest.fixture
def make_image() -> Callable[..., Image]:
    """Factory for images whose bands are constant arrays.

    ``reads`` on the returned factory counts reader calls per band.
    """
    reads: Counter[str] = Counter()

    def _factory(image_id: str, timestamp: datetime, **bands: float) -> Image:
        def _reader(band: str, value: float) -> Callable[[Grid], FloatArray]:
            def _read(grid: Grid) -> FloatArray:
                reads[band] += 1
                return np.full(grid.shape, value, dtype=np.float32)

            return _read

        return Image(
            image_id=image_id,
            timestamp=timestamp,
            bands={name: _reader(name, value) for name, value in bands.items()},
        )

    _factory.reads = reads  # type: ignore[attr-defined]
    return _factory


@pytest.fixture(autouse=True)
def _reset_provider_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep provider registrations from leaking between tests."""
    import seasonalndvi.providers as _providers

    monkeypatch.setattr(_providers, "_PROVIDER_REGISTRY", {})
    monkeypatch.setattr(_providers, "_REGISTRY_INITIALIZED", False)


@pytest.fixture
def entry_factory() -> Callable[..., CatalogEntry]:
    """``make_entry`` as a fixture."""
    return make_entry


@pytest.fixture
def provider_factory() -> type[FakeProvider]:
    """The ``FakeProvider`` class, for tests that configure entries."""
    return FakeProvider


@pytest.fixture
def source_factory() -> type[InMemorySource]:
    """The ``InMemorySource`` class."""
    return InMemorySource
