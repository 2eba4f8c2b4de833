"""Tests for temporal-mean seasonal compositing."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

import numpy as np
import numpy.testing as npt
import pytest
from shapely.geometry import Polygon

from seasonalndvi._types import Grid
from seasonalndvi.analysis.compositing import (
    SeasonalComposite,
    composite,
    temporal_mean,
)
from seasonalndvi.analysis.vegetation import NDVI_BAND, ndvi_collection
from seasonalndvi.boundaries import Boundary
from seasonalndvi.raster import TRUNCATED_KEY, Image, ImageCollection
from seasonalndvi.seasons import MONSOON_2022, SUMMER_2022


def _ts(month: int, day: int) -> datetime:
    return datetime(2022, month, day, tzinfo=timezone.utc)


@pytest.fixture
def ndvi_plan(
    make_image: Callable[..., Image],
    source_factory: type,
    test_boundary: Boundary,
) -> ImageCollection:
    """Two summer images (0.4, 0.6), one monsoon image (0.8), one on June 30."""
    source = source_factory([
        make_image("s1", _ts(4, 15), NDVI=0.4),
        make_image("s2", _ts(6, 1), NDVI=0.6),
        make_image("edge", _ts(6, 30), NDVI=-1.0),
        make_image("m1", _ts(8, 1), NDVI=0.8),
    ])
    return ImageCollection(source).filter_bounds(test_boundary)


@pytest.mark.unit
class TestTemporalMean:
    """Verify the NaN-aware pixel-wise mean."""

    def test_plain_mean(self) -> None:
        layers = [np.full((2, 2), 0.4), np.full((2, 2), 0.6)]
        npt.assert_allclose(temporal_mean(layers), 0.5)

    def test_nan_ignored(self) -> None:
        a = np.array([[0.2, np.nan]])
        b = np.array([[0.4, 0.9]])
        npt.assert_allclose(temporal_mean([a, b]), [[0.3, 0.9]])

    def test_all_nan_pixel_stays_nan(self) -> None:
        a = np.array([[np.nan, 0.1]])
        result = temporal_mean([a, a])
        assert np.isnan(result[0, 0])

    def test_order_independent(self) -> None:
        rng = np.random.default_rng(7)
        layers = [rng.random((5, 5)) for _ in range(4)]
        npt.assert_allclose(temporal_mean(layers), temporal_mean(layers[::-1]))

    def test_accepts_generator(self) -> None:
        result = temporal_mean(np.full((1, 1), v) for v in (1.0, 2.0, 3.0))
        npt.assert_allclose(result, 2.0)

    def test_empty_with_shape(self) -> None:
        assert np.isnan(temporal_mean([], shape=(3, 2))).all()

    def test_empty_without_shape(self) -> None:
        with pytest.raises(ValueError, match="explicit shape"):
            temporal_mean([])

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="does not match"):
            temporal_mean([np.zeros((2, 2)), np.zeros((3, 3))])


@pytest.mark.unit
class TestComposite:
    """Verify seasonal composites over a plan."""

    def test_building_reads_nothing(
        self,
        ndvi_plan: ImageCollection,
        make_image: Callable[..., Image],
        test_boundary: Boundary,
    ) -> None:
        summer = composite(ndvi_plan, SUMMER_2022, test_boundary, name="summer")
        assert isinstance(summer, SeasonalComposite)
        assert summer.collection.date_range == SUMMER_2022
        assert make_image.reads[NDVI_BAND] == 0  # type: ignore[attr-defined]
        assert ndvi_plan.source.list_calls == []  # type: ignore[attr-defined]

    def test_summer_mean(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        summer = composite(ndvi_plan, SUMMER_2022, test_boundary)
        data = summer.read(test_grid)
        assert data.shape == test_grid.shape
        npt.assert_allclose(data, 0.5, atol=1e-6)

    def test_seasons_use_disjoint_images(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        summer = composite(ndvi_plan, SUMMER_2022, test_boundary).evaluate(test_grid)
        monsoon = composite(ndvi_plan, MONSOON_2022, test_boundary).evaluate(test_grid)

        assert summer.metadata.observation_count == 2
        assert monsoon.metadata.observation_count == 1
        npt.assert_allclose(monsoon.data, 0.8, atol=1e-6)
        assert not set(summer.metadata.timestamps) & set(monsoon.metadata.timestamps)

    def test_end_date_excluded(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        result = composite(ndvi_plan, SUMMER_2022, test_boundary).evaluate(test_grid)
        assert "2022-06-30" not in " ".join(result.metadata.timestamps)

    def test_empty_season_all_nan_with_warning(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        from seasonalndvi.seasons import DateRange

        winter = DateRange("2022-12-01", "2023-02-28")
        result = composite(ndvi_plan, winter, test_boundary, name="winter").evaluate(
            test_grid
        )
        assert result.data.shape == test_grid.shape
        assert np.isnan(result.data).all()
        assert result.metadata.observation_count == 0
        assert any("No images" in w for w in result.warnings)

    def test_clipped_to_boundary(
        self,
        ndvi_plan: ImageCollection,
        test_grid: Grid,
    ) -> None:
        triangle = Boundary(geometry=Polygon([(70, 20), (71, 20), (70, 21)]))
        data = composite(ndvi_plan, SUMMER_2022, triangle).read(test_grid)
        assert np.isnan(data[0, 3])
        assert data[3, 0] == pytest.approx(0.5, abs=1e-6)

    def test_compute_builds_grid_from_boundary(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
    ) -> None:
        result = composite(ndvi_plan, SUMMER_2022, test_boundary, name="summer").compute(
            scale=55_660
        )
        assert result.grid.shape == (2, 2)
        assert result.name == "summer"
        assert result.metadata.resolution_m == 55_660
        assert result.metadata.bands == [NDVI_BAND]
        assert result.mean_ndvi == pytest.approx(0.5, abs=1e-6)

    def test_result_metadata(
        self,
        ndvi_plan: ImageCollection,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        result = composite(ndvi_plan, SUMMER_2022, test_boundary).evaluate(test_grid)
        assert result.metadata.source == "test-collection"
        assert result.metadata.crs == "EPSG:4326"
        assert result.metadata.bounds["minx"] == pytest.approx(70.0)
        assert result.valid_pixels == 16

    @pytest.mark.parametrize("order", [(0, 1, 2), (2, 0, 1), (1, 2, 0)])
    def test_source_order_does_not_matter(
        self,
        make_image: Callable[..., Image],
        source_factory: type,
        test_boundary: Boundary,
        test_grid: Grid,
        order: tuple[int, int, int],
    ) -> None:
        images = [
            make_image("a", _ts(4, 10), NDVI=0.2),
            make_image("b", _ts(5, 10), NDVI=0.5),
            make_image("c", _ts(6, 10), NDVI=0.9),
        ]
        shuffled = ImageCollection(source_factory([images[i] for i in order]))
        result = composite(shuffled, SUMMER_2022, test_boundary).evaluate(test_grid)

        npt.assert_allclose(result.data, 1.6 / 3, atol=1e-6)
        assert result.metadata.timestamps == sorted(result.metadata.timestamps)

    def test_constant_reflectance_gives_half_in_both_seasons(
        self,
        make_image: Callable[..., Image],
        source_factory: type,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        source = source_factory([
            make_image(f"d{m}{d}", _ts(m, d), sur_refl_b01=0.1, sur_refl_b02=0.3)
            for m, d in [(5, 1), (5, 15), (8, 10)]
        ])
        ndvi = ndvi_collection(ImageCollection(source).filter_bounds(test_boundary))

        summer = composite(ndvi, SUMMER_2022, test_boundary).evaluate(test_grid)
        monsoon = composite(ndvi, MONSOON_2022, test_boundary).evaluate(test_grid)

        assert summer.metadata.observation_count == 2
        assert monsoon.metadata.observation_count == 1
        npt.assert_allclose(summer.data, 0.5, atol=1e-6)
        npt.assert_allclose(monsoon.data, 0.5, atol=1e-6)

    def test_truncated_catalog_warns(
        self,
        make_image: Callable[..., Image],
        source_factory: type,
        test_boundary: Boundary,
        test_grid: Grid,
    ) -> None:
        img = replace(
            make_image("a", _ts(5, 1), NDVI=0.4), metadata={TRUNCATED_KEY: 10_000}
        )
        plan = ImageCollection(source_factory([img]))
        result = composite(plan, SUMMER_2022, test_boundary).evaluate(test_grid)
        assert any("truncated at 10000 items" in w for w in result.warnings)
