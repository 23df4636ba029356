"""Room conflict detection for candidate booking intervals."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from datetime import datetime
from typing import Optional

from booking_engine.domain.intervals import overlaps, require_valid_interval
from booking_engine.domain.models import (
    DEFAULT_BLOCKING_STATUSES,
    Reservation,
    ReservationStatus,
)


def blocking_only(
    reservations: Iterable[Reservation],
    statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
) -> list[Reservation]:
    return [reservation for reservation in reservations if reservation.status in statuses]


def find_conflict(
    room_id: int,
    start: Optional[datetime],
    end: Optional[datetime],
    reservations: Iterable[Reservation],
    *,
    blocking_statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
) -> Optional[Reservation]:
    """Return the first reservation of ``room_id`` overlapping the candidate.

    An unspecified start or end cannot conflict with anything. Reservations
    are scanned in the order given.
    """
    if start is None or end is None:
        return None
    require_valid_interval(start, end)

    for reservation in reservations:
        if reservation.room_id != room_id:
            continue
        if reservation.status not in blocking_statuses:
            continue
        if overlaps(start, end, reservation.start, reservation.end):
            return reservation
    return None


def is_room_available(
    room_id: int,
    start: Optional[datetime],
    end: Optional[datetime],
    reservations: Iterable[Reservation],
    *,
    blocking_statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
) -> bool:
    return (
        find_conflict(
            room_id,
            start,
            end,
            reservations,
            blocking_statuses=blocking_statuses,
        )
        is None
    )
