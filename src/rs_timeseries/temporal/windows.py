"""Uniform date windows between a start and an end date.

``generate_windows('2020-01-01', '2020-04-01', 1, 'months')`` yields windows
starting on Jan 1, Feb 1, Mar 1 and Apr 1.  The trailing window starts on
(or after) the end date by construction, so callers must tolerate an empty
or partial final window.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import pandas as pd


DateLike = Union[str, date, datetime]


class IntervalType(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"

    @classmethod
    def parse(cls, value: Union[str, "IntervalType"]) -> "IntervalType":
        """Accept ``'month'``, ``'Months'``, ``IntervalType.MONTHS`` etc."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if not key.endswith("s"):
            key += "s"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown interval type {value!r}; choose from {[t.value for t in cls]}"
            ) from None


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def advance(start: date, amount: int, interval_type: IntervalType) -> date:
    """Calendar-aware ``start + amount`` units (month ends clamp, e.g. Jan 31 + 1 month = Feb 29)."""
    interval_type = IntervalType.parse(interval_type)
    if interval_type is IntervalType.DAYS:
        return start + timedelta(days=amount)
    if interval_type is IntervalType.WEEKS:
        return start + timedelta(weeks=amount)
    if interval_type is IntervalType.MONTHS:
        return (pd.Timestamp(start) + pd.DateOffset(months=amount)).date()
    return (pd.Timestamp(start) + pd.DateOffset(years=amount)).date()


def _months_between(start: date, end: date) -> float:
    whole = (end.year - start.year) * 12 + (end.month - start.month)
    anchor = advance(start, whole, IntervalType.MONTHS)
    if anchor > end:
        whole -= 1
        anchor = advance(start, whole, IntervalType.MONTHS)
    following = advance(start, whole + 1, IntervalType.MONTHS)
    return whole + (end - anchor).days / (following - anchor).days


def duration(start: date, end: date, interval_type: IntervalType) -> float:
    """Length of ``[start, end)`` in (possibly fractional) *interval_type* units."""
    interval_type = IntervalType.parse(interval_type)
    days = (end - start).days
    if interval_type is IntervalType.DAYS:
        return float(days)
    if interval_type is IntervalType.WEEKS:
        return days / 7.0
    months = _months_between(start, end)
    if interval_type is IntervalType.MONTHS:
        return months
    return months / 12.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class WindowMetadata:
    """Properties stamped on every composite."""

    start_date: str
    end_date: str
    year: int
    month: int
    image_count: Optional[int] = None
    source: Optional[str] = None

    def as_properties(self) -> Dict[str, Any]:
        props = {k: v for k, v in asdict(self).items() if v is not None}
        props["date"] = self.start_date
        return props


@dataclass(frozen=True, order=True)
class DateWindow:
    start: date
    end: date

    @property
    def month(self) -> int:
        return self.start.month

    @property
    def year(self) -> int:
        return self.start.year

    def metadata(self, **extra) -> WindowMetadata:
        return WindowMetadata(
            start_date=self.start.isoformat(),
            end_date=self.end.isoformat(),
            year=self.year,
            month=self.month,
            **extra,
        )

    def properties(self) -> Dict[str, Any]:
        return self.metadata().as_properties()

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def generate_windows(
    start: DateLike,
    end: DateLike,
    interval: int = 1,
    interval_type: Union[str, IntervalType] = IntervalType.MONTHS,
) -> Tuple[DateWindow, ...]:
    """Windows starting at ``start + k`` units for ``k = 0, interval, ... <= n``.

    ``n`` is the start/end distance in *interval_type* units, rounded half
    up.  Each offset is applied to *start* directly, never chained, so month
    ends do not drift.
    """
    interval_type = IntervalType.parse(interval_type)
    if int(interval) != interval or interval < 1:
        raise ValueError(f"interval must be a positive integer, got {interval!r}")
    interval = int(interval)
    first, last = parse_date(start), parse_date(end)
    if last < first:
        raise ValueError(f"End date {last} precedes start date {first}")

    n = round_half_up(duration(first, last, interval_type))
    windows = []
    for offset in range(0, n + 1, interval):
        window_start = advance(first, offset, interval_type)
        windows.append(
            DateWindow(window_start, advance(first, offset + interval, interval_type))
        )
    return tuple(windows)
