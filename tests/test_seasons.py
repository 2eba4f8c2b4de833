"""Tests for DateRange and the 2022 season windows."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from seasonalndvi.seasons import MONSOON_2022, SEASONS_2022, SUMMER_2022, DateRange


@pytest.mark.unit
class TestDateRangeConstruction:
    """Verify coercion and validation."""

    def test_strings_coerced(self) -> None:
        dr = DateRange("2022-04-01", "2022-06-30")
        assert dr.start == date(2022, 4, 1)
        assert dr.end == date(2022, 6, 30)

    def test_datetimes_coerced(self) -> None:
        dr = DateRange(datetime(2022, 4, 1, 12), datetime(2022, 4, 2))
        assert dr.start == date(2022, 4, 1)

    def test_end_before_start_rejected(self) -> None:
        with pytest.raises(ValueError, match="before start"):
            DateRange("2022-06-30", "2022-04-01")

    def test_equal_bounds_is_empty(self) -> None:
        dr = DateRange("2022-05-01", "2022-05-01")
        assert dr.is_empty
        assert not dr.contains(date(2022, 5, 1))

    def test_str(self) -> None:
        assert str(SUMMER_2022) == "[2022-04-01, 2022-06-30)"


@pytest.mark.unit
class TestDateRangeContains:
    """Verify half-open membership."""

    def test_start_included(self) -> None:
        assert SUMMER_2022.contains(date(2022, 4, 1))

    def test_end_excluded(self) -> None:
        assert not SUMMER_2022.contains(date(2022, 6, 30))
        assert not MONSOON_2022.contains(date(2022, 9, 30))

    def test_last_included_day(self) -> None:
        assert SUMMER_2022.contains(date(2022, 6, 29))

    def test_aware_datetime_compared_in_utc(self) -> None:
        ist = timezone(timedelta(hours=5, minutes=30))
        # 2022-04-01 02:00 IST is 2022-03-31 in UTC
        assert not SUMMER_2022.contains(datetime(2022, 4, 1, 2, tzinfo=ist))
        assert SUMMER_2022.contains(datetime(2022, 4, 1, 6, tzinfo=ist))

    def test_naive_datetime_taken_as_is(self) -> None:
        assert SUMMER_2022.contains(datetime(2022, 6, 29, 23, 59))


@pytest.mark.unit
class TestDateRangeAlgebra:
    """Verify overlap and intersection."""

    def test_seasons_disjoint(self) -> None:
        assert not SUMMER_2022.overlaps(MONSOON_2022)
        assert SUMMER_2022.intersection(MONSOON_2022).is_empty

    def test_intersection(self) -> None:
        other = DateRange("2022-06-01", "2022-08-01")
        assert SUMMER_2022.intersection(other) == DateRange("2022-06-01", "2022-06-30")
        assert SUMMER_2022.overlaps(other)

    def test_empty_never_overlaps(self) -> None:
        empty = DateRange("2022-05-01", "2022-05-01")
        assert not empty.overlaps(SUMMER_2022)

    def test_season_table_order(self) -> None:
        assert list(SEASONS_2022) == ["summer", "monsoon"]


@pytest.mark.unit
class TestStacInterval:
    """Verify conversion to a closed STAC datetime interval."""

    def test_excluded_end_becomes_previous_day(self) -> None:
        assert SUMMER_2022.to_stac_interval() == (
            "2022-04-01T00:00:00Z/2022-06-29T23:59:59Z"
        )

    def test_empty_range_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            DateRange("2022-05-01", "2022-05-01").to_stac_interval()
