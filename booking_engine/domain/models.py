"""Domain models for room availability and booking cost computation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class ReservationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    FINISHED = "finished"


DEFAULT_BLOCKING_STATUSES: frozenset[ReservationStatus] = frozenset(
    status
    for status in ReservationStatus
    if status not in (ReservationStatus.REJECTED, ReservationStatus.CANCELLED)
)


class CostType(str, Enum):
    FLAT = "flat"
    HOURLY = "hourly"
    PER_ATTENDEE = "per_attendee"


@dataclass(frozen=True)
class Facility:
    name: str
    cost: int


@dataclass(frozen=True)
class Room:
    room_id: int
    name: str
    capacity: int
    flat_rate: Optional[int] = None
    hourly_rate: Optional[int] = None
    attendee_rate: Optional[int] = None
    facilities: tuple[Facility, ...] = ()
    active: bool = True

    def rate_for(self, cost_type: CostType) -> Optional[int]:
        if cost_type is CostType.FLAT:
            return self.flat_rate
        if cost_type is CostType.HOURLY:
            return self.hourly_rate
        return self.attendee_rate

    def find_facility(self, name: str) -> Optional[Facility]:
        for facility in self.facilities:
            if facility.name == name:
                return facility
        return None


@dataclass(frozen=True)
class Reservation:
    """An already-committed booking of one room."""

    reservation_id: int
    room_id: int
    start: datetime
    end: datetime
    status: ReservationStatus = ReservationStatus.PENDING
    title: Optional[str] = None


@dataclass(frozen=True)
class RoomSettings:
    cost_type: CostType = CostType.FLAT
    requested_facilities: tuple[str, ...] = ()


@dataclass(frozen=True)
class BookingCandidate:
    """Not-yet-committed, possibly multi-room booking request.

    ``room_settings`` is copied and frozen on construction, so the mapping a
    caller passed in can keep changing without affecting this candidate.
    Selection order is the mapping's insertion order.
    """

    start: Optional[datetime]
    end: Optional[datetime]
    attendee_count: int
    room_settings: Mapping[int, RoomSettings] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "room_settings",
            MappingProxyType(dict(self.room_settings)),
        )

    @property
    def room_ids(self) -> list[int]:
        return list(self.room_settings)


@dataclass(frozen=True)
class BookingDetails:
    """Descriptive fields stored with a booking; never used in pricing."""

    title: str
    customer_name: str
    customer_email: str
    purpose: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class FacilityCharge:
    name: str
    cost: int


@dataclass(frozen=True)
class CostLine:
    room_id: int
    room_name: str
    cost_type: CostType
    base: int
    facilities: tuple[FacilityCharge, ...]
    hours: int
    rate_missing: bool = False

    @property
    def facility_total(self) -> int:
        return sum(charge.cost for charge in self.facilities)

    @property
    def total(self) -> int:
        return self.base + self.facility_total

    def to_dict(self) -> dict[str, object]:
        return {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "cost_type": self.cost_type.value,
            "base": self.base,
            "facilities": [
                {"name": charge.name, "cost": charge.cost}
                for charge in self.facilities
            ],
            "facility_total": self.facility_total,
            "hours": self.hours,
            "total": self.total,
            "rate_missing": self.rate_missing,
        }


@dataclass(frozen=True)
class CostSummary:
    base_total: int
    facility_total: int
    grand_total: int
    hours: int
    lines: tuple[CostLine, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "base_total": self.base_total,
            "facility_total": self.facility_total,
            "grand_total": self.grand_total,
            "hours": self.hours,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class PricedBooking:
    candidate: BookingCandidate
    lines: tuple[CostLine, ...]
    summary: CostSummary


@dataclass(frozen=True)
class RoomUnavailable:
    """Failure value: a selected room collides with an existing reservation."""

    room_id: int
    conflict_start: datetime
    conflict_end: datetime
    reservation_id: int

    @property
    def message(self) -> str:
        return (
            f"Room {self.room_id} is already reserved from "
            f"{self.conflict_start.isoformat()} to {self.conflict_end.isoformat()}"
        )
