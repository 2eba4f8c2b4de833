"""Calendar date ranges and the 2022 Indian season windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


@dataclass(frozen=True)
class DateRange:
    """Half-open interval ``[start, end)`` over calendar dates.

    ``start == end`` is a valid, empty range.

    Args:
        start: First included date (``date`` or ISO string).
        end: First excluded date (``date`` or ISO string).

    Raises:
        ValueError: If *end* is before *start*.

    Example:
        >>> summer = DateRange("2022-04-01", "2022-06-30")
        >>> summer.contains(date(2022, 6, 29))
        True
        >>> summer.contains(date(2022, 6, 30))
        False
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _as_date(self.start))
        object.__setattr__(self, "end", _as_date(self.end))
        if self.end < self.start:
            msg = f"DateRange end {self.end} is before start {self.start}"
            raise ValueError(msg)

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, moment: date | datetime) -> bool:
        """Return whether *moment* falls inside the range.

        Timezone-aware datetimes are compared by their UTC calendar date;
        naive datetimes are taken as UTC.
        """
        if isinstance(moment, datetime):
            if moment.tzinfo is not None:
                moment = moment.astimezone(timezone.utc)
            day = moment.date()
        else:
            day = moment
        return self.start <= day < self.end

    def overlaps(self, other: DateRange) -> bool:
        """Return whether any date belongs to both ranges."""
        if self.is_empty or other.is_empty:
            return False
        return self.start < other.end and other.start < self.end

    def intersection(self, other: DateRange) -> DateRange:
        """Return the dates common to both ranges (possibly empty)."""
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end < start:
            end = start
        return DateRange(start, end)

    def to_stac_interval(self) -> str:
        """Format as a closed STAC ``datetime`` interval.

        The excluded end date becomes the last second of the day before.

        Raises:
            ValueError: If the range is empty.
        """
        if self.is_empty:
            msg = "An empty DateRange has no STAC interval"
            raise ValueError(msg)
        last_day = self.end - timedelta(days=1)
        return f"{self.start.isoformat()}T00:00:00Z/{last_day.isoformat()}T23:59:59Z"

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


SUMMER_2022 = DateRange("2022-04-01", "2022-06-30")
MONSOON_2022 = DateRange("2022-07-01", "2022-09-30")

SEASONS_2022: dict[str, DateRange] = {
    "summer": SUMMER_2022,
    "monsoon": MONSOON_2022,
}
