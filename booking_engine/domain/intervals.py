"""Primitive operations on reservation time intervals.

Every overlap decision in the engine goes through :func:`overlaps`, which
uses half-open semantics: an interval ending at 10:00 does not collide with
one starting at 10:00.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta


class InvalidInterval(ValueError):
    """Raised when an interval does not satisfy start < end."""

    def __init__(self, start: datetime | None, end: datetime | None) -> None:
        self.start = start
        self.end = end
        super().__init__(f"interval end must be after start (start={start}, end={end})")


def require_valid_interval(start: datetime | None, end: datetime | None) -> None:
    if start is None or end is None or end <= start:
        raise InvalidInterval(start, end)


def days_spanned(start: datetime, end: datetime) -> list[date]:
    """Return every calendar date from start's day through end's day, inclusive."""
    require_valid_interval(start, end)
    first_day = start.date()
    span = (end.date() - first_day).days
    return [first_day + timedelta(days=offset) for offset in range(span + 1)]


def same_day(start: datetime, end: datetime) -> bool:
    require_valid_interval(start, end)
    return start.date() == end.date()


def overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """True iff the two half-open intervals share at least one instant."""
    require_valid_interval(a_start, a_end)
    require_valid_interval(b_start, b_end)
    return a_start < b_end and b_start < a_end


def hour_bucket_overlap(
    candidate_start: datetime,
    candidate_end: datetime,
    day: date,
    hour: int,
) -> bool:
    """Check whether [day hour:00, day hour:59:59.999999] touches the candidate.

    Both ends are inclusive here; the check only feeds hour-by-hour detail
    views, never booking decisions.
    """
    if not 0 <= hour <= 23:
        raise ValueError("hour must be between 0 and 23")
    bucket_start = datetime.combine(day, time(hour=hour))
    bucket_end = datetime.combine(day, time(hour=hour, minute=59, second=59, microsecond=999999))
    return candidate_start <= bucket_end and candidate_end >= bucket_start


def hours_ceil(start: datetime, end: datetime) -> int:
    """Whole hours charged for the interval, rounded up, at least one."""
    require_valid_interval(start, end)
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / 3600))
