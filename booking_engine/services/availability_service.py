"""Day-level availability index and hour-level detail for a single room."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Union

from booking_engine.domain.intervals import days_spanned, hour_bucket_overlap
from booking_engine.domain.models import (
    DEFAULT_BLOCKING_STATUSES,
    Reservation,
    ReservationStatus,
)
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_HORIZON_DAYS = 90

DayLike = Union[date, datetime, str]


def _day_key(value: DayLike) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(value).isoformat()


def _as_date(value: DayLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


@dataclass(frozen=True)
class HourSlot:
    hour: int
    reservations: tuple[Reservation, ...]
    past: bool = False

    @property
    def available(self) -> bool:
        return not self.past and not self.reservations

    @property
    def label(self) -> str:
        return f"{self.hour:02d}:00"


class AvailabilityIndex:
    """Reservations of one room grouped by calendar day over a horizon.

    Read-only after construction. Any change to the underlying reservation
    list means building a new index.
    """

    def __init__(
        self,
        horizon_start: date,
        horizon_days: int,
        today: date,
        by_day: dict[str, list[Reservation]],
    ) -> None:
        self._horizon_start = horizon_start
        self._horizon_end = horizon_start + timedelta(days=horizon_days)
        self._today = today
        self._by_day = by_day

    @property
    def horizon_start(self) -> date:
        return self._horizon_start

    @property
    def horizon_end(self) -> date:
        """First day after the horizon (exclusive bound)."""
        return self._horizon_end

    def is_booked(self, day: DayLike) -> bool:
        return bool(self._by_day.get(_day_key(day)))

    def reservations_on(self, day: DayLike) -> list[Reservation]:
        """Reservations touching ``day`` in input order, not by start time."""
        return list(self._by_day.get(_day_key(day), ()))

    def is_available(self, day: DayLike) -> bool:
        target = _as_date(day)
        if target < self._today or target >= self._horizon_end:
            return False
        return not self.is_booked(target)

    def booked_days(self) -> list[str]:
        return sorted(key for key, items in self._by_day.items() if items)

    def horizon(self) -> list[date]:
        span = (self._horizon_end - self._horizon_start).days
        return [self._horizon_start + timedelta(days=offset) for offset in range(span)]

    def hourly_timeline(self, day: DayLike) -> list[HourSlot]:
        """Split one day into 24 hour buckets with the reservations touching each.

        Every slot of a day before today is unavailable. Days outside the
        horizon raise ``ValueError``, since their reservations were never indexed.
        """
        target = _as_date(day)
        if not self._horizon_start <= target < self._horizon_end:
            raise ValueError(
                f"{target.isoformat()} is outside the indexed horizon "
                f"[{self._horizon_start.isoformat()}, {self._horizon_end.isoformat()})"
            )
        day_reservations = self.reservations_on(target)
        past = target < self._today
        return [
            HourSlot(
                hour=hour,
                reservations=tuple(
                    reservation
                    for reservation in day_reservations
                    if hour_bucket_overlap(reservation.start, reservation.end, target, hour)
                ),
                past=past,
            )
            for hour in range(24)
        ]


def build_availability_index(
    reservations: Iterable[Reservation],
    horizon_start: DayLike,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    *,
    now: datetime,
    blocking_statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
) -> AvailabilityIndex:
    """Build the day-keyed index in one pass over ``reservations``.

    ``now`` is read once by the caller and decides which days count as past.
    """
    if horizon_days <= 0:
        raise ValueError("horizon_days must be > 0")

    start_day = _as_date(horizon_start)
    end_day = start_day + timedelta(days=horizon_days)
    by_day: dict[str, list[Reservation]] = {}
    indexed = 0

    for reservation in reservations:
        if reservation.status not in blocking_statuses:
            continue
        for day in days_spanned(reservation.start, reservation.end):
            if start_day <= day < end_day:
                by_day.setdefault(day.isoformat(), []).append(reservation)
        indexed += 1

    logger.debug(
        "Availability index built from %s reservations over %s days starting %s",
        indexed,
        horizon_days,
        start_day.isoformat(),
    )
    return AvailabilityIndex(
        horizon_start=start_day,
        horizon_days=horizon_days,
        today=now.date(),
        by_day=by_day,
    )


def room_utilization(
    reservations: Iterable[Reservation],
    range_start: datetime,
    range_end: datetime,
    *,
    statuses: Collection[ReservationStatus] = frozenset({ReservationStatus.APPROVED}),
) -> float:
    """Percentage of [range_start, range_end) covered by matching reservations.

    Each reservation is clipped to the range before its duration is counted.
    """
    total_seconds = (range_end - range_start).total_seconds()
    if total_seconds <= 0:
        return 0.0

    booked_seconds = 0.0
    for reservation in reservations:
        if reservation.status not in statuses:
            continue
        clipped_start = max(reservation.start, range_start)
        clipped_end = min(reservation.end, range_end)
        if clipped_end > clipped_start:
            booked_seconds += (clipped_end - clipped_start).total_seconds()

    return float(booked_seconds / total_seconds * 100)
