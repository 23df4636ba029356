"""Booking assembly: conflict checks, pricing and the commit boundary."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from booking_engine.domain.constraints import validate_candidate
from booking_engine.domain.intervals import require_valid_interval
from booking_engine.domain.models import (
    DEFAULT_BLOCKING_STATUSES,
    BookingCandidate,
    BookingDetails,
    PricedBooking,
    Reservation,
    ReservationStatus,
    Room,
    RoomUnavailable,
)
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import (
    AvailabilityIndex,
    HourSlot,
    build_availability_index,
    room_utilization,
)
from booking_engine.services.conflict_service import find_conflict
from booking_engine.services.cost_service import aggregate, room_cost
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class BookingError(Exception):
    """Base exception for booking workflow failures."""


class BookingValidationError(BookingError):
    """Raised when a booking candidate cannot be priced as submitted."""


class RoomNotFoundError(BookingError):
    """Raised when a selected room id does not exist."""


class ReservationNotFoundError(BookingError):
    """Raised when a reservation id does not exist."""


class InvalidStatusTransitionError(BookingError):
    """Raised when a reservation cannot move to the requested status."""


class PricingValidationError(BookingError):
    """Raised when a booking would be confirmed with a missing pricing rate."""


ALLOWED_STATUS_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {
            ReservationStatus.APPROVED,
            ReservationStatus.REJECTED,
            ReservationStatus.CANCELLED,
        }
    ),
    ReservationStatus.APPROVED: frozenset(
        {
            ReservationStatus.CANCELLED,
            ReservationStatus.FINISHED,
        }
    ),
}


def price_booking(
    candidate: BookingCandidate,
    rooms: Union[Iterable[Room], Mapping[int, Room]],
    reservations: Iterable[Reservation],
    *,
    blocking_statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
) -> Union[PricedBooking, RoomUnavailable]:
    """Conflict-check every selected room, then price them.

    All rooms must clear before any cost is computed: the first room that
    collides is returned as ``RoomUnavailable``. No I/O happens here; the
    caller supplies rooms and reservations already fetched.
    """
    try:
        validate_candidate(candidate)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from exc
    require_valid_interval(candidate.start, candidate.end)

    if isinstance(rooms, Mapping):
        rooms_by_id = dict(rooms)
    else:
        rooms_by_id = {room.room_id: room for room in rooms}
    missing = [room_id for room_id in candidate.room_ids if room_id not in rooms_by_id]
    if missing:
        raise RoomNotFoundError(f"Room(s) not found: {', '.join(str(item) for item in missing)}")

    snapshot = list(reservations)
    for room_id in candidate.room_ids:
        conflict = find_conflict(
            room_id,
            candidate.start,
            candidate.end,
            snapshot,
            blocking_statuses=blocking_statuses,
        )
        if conflict is not None:
            logger.info(
                "Room %s unavailable: overlaps reservation %s",
                room_id,
                conflict.reservation_id,
            )
            return RoomUnavailable(
                room_id=room_id,
                conflict_start=conflict.start,
                conflict_end=conflict.end,
                reservation_id=conflict.reservation_id,
            )

    lines = tuple(
        room_cost(
            rooms_by_id[room_id],
            selection.cost_type,
            candidate.start,
            candidate.end,
            candidate.attendee_count,
            selection.requested_facilities,
        )
        for room_id, selection in candidate.room_settings.items()
    )
    return PricedBooking(candidate=candidate, lines=lines, summary=aggregate(lines))


@dataclass(frozen=True)
class ConfirmedBooking:
    reservation_id: int
    order_number: int
    priced: PricedBooking


@dataclass(frozen=True)
class StatusChange:
    reservation_id: int
    previous: ReservationStatus
    status: ReservationStatus
    final_revenue: Optional[int] = None


def _require_not_past(candidate: BookingCandidate, now: datetime) -> None:
    if candidate.start is not None and candidate.start.date() < now.date():
        raise BookingValidationError(
            f"Bookings cannot start before today ({now.date().isoformat()})"
        )


class BookingService:
    """Runs the pure engine against freshly read repository state."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _load_rooms(self, room_ids: Iterable[int], conn=None) -> list[Room]:
        rooms: list[Room] = []
        for room_id in room_ids:
            room = self._repository.fetch_room(room_id, conn=conn)
            if room is None:
                raise RoomNotFoundError(f"Room {room_id} not found")
            if not room.active:
                raise BookingValidationError(f"Room {room_id} is not active")
            rooms.append(room)
        return rooms

    def _load_blocking(
        self,
        room_ids: Iterable[int],
        start: datetime,
        end: datetime,
        conn=None,
    ) -> list[Reservation]:
        reservations: list[Reservation] = []
        for room_id in room_ids:
            reservations.extend(
                self._repository.fetch_blocking_reservations(
                    room_id,
                    start,
                    end,
                    conn=conn,
                )
            )
        return reservations

    def _require_room(self, room_id: int) -> Room:
        room = self._repository.fetch_room(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return room

    def check_availability(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
    ) -> Optional[Reservation]:
        """Return the first conflicting reservation, or None when the room is free."""
        require_valid_interval(start, end)
        self._load_rooms([room_id])
        reservations = self._load_blocking([room_id], start, end)
        return find_conflict(room_id, start, end, reservations)

    def availability(
        self,
        room_id: int,
        *,
        now: datetime,
        horizon_days: Optional[int] = None,
    ) -> AvailabilityIndex:
        days = horizon_days or self._settings.horizon_days
        self._require_room(room_id)
        horizon_start = datetime.combine(now.date(), time.min)
        horizon_end = horizon_start + timedelta(days=days)
        reservations = self._repository.fetch_blocking_reservations(
            room_id,
            horizon_start,
            horizon_end,
        )
        return build_availability_index(
            reservations,
            horizon_start.date(),
            days,
            now=now,
        )

    def day_timeline(self, room_id: int, day: date, *, now: datetime) -> list[HourSlot]:
        """Hour-by-hour view of any single day, read from that day's reservations."""
        self._require_room(room_id)
        day_start = datetime.combine(day, time.min)
        reservations = self._repository.fetch_blocking_reservations(
            room_id,
            day_start,
            day_start + timedelta(days=1),
        )
        index = build_availability_index(reservations, day, 1, now=now)
        return index.hourly_timeline(day)

    def quote(
        self,
        candidate: BookingCandidate,
        *,
        now: Optional[datetime] = None,
    ) -> Union[PricedBooking, RoomUnavailable]:
        """Price against the current snapshot; not authoritative for commit."""
        require_valid_interval(candidate.start, candidate.end)
        if now is not None:
            _require_not_past(candidate, now)
        rooms = self._load_rooms(candidate.room_ids)
        reservations = self._load_blocking(candidate.room_ids, candidate.start, candidate.end)
        return price_booking(candidate, rooms, reservations)

    def confirm_booking(
        self,
        candidate: BookingCandidate,
        details: BookingDetails,
        *,
        now: datetime,
    ) -> Union[ConfirmedBooking, RoomUnavailable]:
        """Re-validate and insert inside one write transaction.

        Conflicts are re-checked against a fresh read taken after the write
        lock is held, so two attempts on the same room and interval cannot
        both succeed. Bookings starting on a day before ``now`` are refused.
        """
        require_valid_interval(candidate.start, candidate.end)
        _require_not_past(candidate, now)
        with self._repository.write_transaction() as conn:
            rooms = self._load_rooms(candidate.room_ids, conn=conn)
            reservations = self._load_blocking(
                candidate.room_ids,
                candidate.start,
                candidate.end,
                conn=conn,
            )
            result = price_booking(candidate, rooms, reservations)
            if isinstance(result, RoomUnavailable):
                return result

            unpriced = [line.room_id for line in result.lines if line.rate_missing]
            if unpriced and not self._settings.allow_unpriced_bookings:
                raise PricingValidationError(
                    "Selected cost type has no rate for room(s): "
                    + ", ".join(str(room_id) for room_id in unpriced)
                )

            stored = self._repository.insert_booking(conn, result, details)

        logger.info(
            "Booking %s (order %s) confirmed for rooms %s, total %s",
            stored.reservation_id,
            stored.order_number,
            candidate.room_ids,
            result.summary.grand_total,
        )
        return ConfirmedBooking(
            reservation_id=stored.reservation_id,
            order_number=stored.order_number,
            priced=result,
        )

    def update_status(
        self,
        reservation_id: int,
        status: ReservationStatus,
        *,
        final_revenue: Optional[int] = None,
    ) -> StatusChange:
        """Move a reservation along its lifecycle.

        Finishing records the final revenue: the given amount, or the agreed
        cost stored at booking time when none is given.
        """
        if final_revenue is not None:
            if status is not ReservationStatus.FINISHED:
                raise BookingValidationError("final_revenue can only be set when finishing a booking")
            if final_revenue < 0:
                raise BookingValidationError("final_revenue must be >= 0")

        with self._repository.write_transaction() as conn:
            current = self._repository.get_reservation_status(reservation_id, conn=conn)
            if current is None:
                raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
            if status not in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset()):
                raise InvalidStatusTransitionError(
                    f"Cannot move reservation {reservation_id} from {current.value} to {status.value}"
                )
            self._repository.set_reservation_status(
                conn,
                reservation_id,
                status,
                final_revenue=final_revenue,
            )
            recorded_revenue = self._repository.get_final_revenue(reservation_id, conn=conn)

        logger.info(
            "Reservation %s moved from %s to %s",
            reservation_id,
            current.value,
            status.value,
        )
        return StatusChange(
            reservation_id=reservation_id,
            previous=current,
            status=status,
            final_revenue=recorded_revenue,
        )

    def room_utilization(self, room_id: int, start: datetime, end: datetime) -> float:
        require_valid_interval(start, end)
        self._require_room(room_id)
        reservations = self._repository.fetch_blocking_reservations(
            room_id,
            start,
            end,
            statuses=(ReservationStatus.APPROVED,),
        )
        return room_utilization(reservations, start, end)

    def overall_utilization(self, start: datetime, end: datetime) -> dict[int, float]:
        """Utilization percentage of every active room, keyed by room id."""
        require_valid_interval(start, end)
        return {
            room.room_id: room_utilization(
                self._repository.fetch_blocking_reservations(
                    room.room_id,
                    start,
                    end,
                    statuses=(ReservationStatus.APPROVED,),
                ),
                start,
                end,
            )
            for room in self._repository.list_rooms(active_only=True)
        }
