"""Domain-level validation rules for rooms, candidates and engine settings."""

from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_engine.domain.models import BookingCandidate, CostType, Room
from booking_engine.utils.config import Settings


def validate_engine_settings(settings: Settings) -> None:
    if settings.horizon_days <= 0:
        raise ValueError("horizon_days must be > 0")
    if not settings.currency_symbol:
        raise ValueError("currency_symbol must be non-empty")
    try:
        ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timezone {settings.timezone!r} is not a known IANA zone") from exc


def validate_room(room: Room) -> None:
    if room.capacity <= 0:
        raise ValueError("room capacity must be > 0")
    if room.flat_rate is None and room.hourly_rate is None and room.attendee_rate is None:
        raise ValueError("room must define at least one pricing rate")
    for rate in (room.flat_rate, room.hourly_rate, room.attendee_rate):
        if rate is not None and rate < 0:
            raise ValueError("pricing rates must be >= 0")
    names = [facility.name for facility in room.facilities]
    if len(names) != len(set(names)):
        raise ValueError("facility names must be unique within a room")
    if any(facility.cost < 0 for facility in room.facilities):
        raise ValueError("facility cost must be >= 0")


def has_pricing_rate(room: Room, cost_type: CostType) -> bool:
    return room.rate_for(cost_type) is not None


def validate_candidate(candidate: BookingCandidate) -> None:
    """Reject candidates that cannot be priced regardless of stored state.

    The interval itself is checked by the interval functions, which raise
    ``InvalidInterval``.
    """
    if candidate.attendee_count < 1:
        raise ValueError("attendee_count must be >= 1")
    if not candidate.room_settings:
        raise ValueError("at least one room must be selected")
