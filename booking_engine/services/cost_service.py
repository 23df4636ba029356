"""Per-room pricing and multi-room aggregation in integer minor units."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from booking_engine.domain.intervals import hours_ceil
from booking_engine.domain.models import (
    CostLine,
    CostSummary,
    CostType,
    FacilityCharge,
    Room,
)
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


def _base_cost(room: Room, cost_type: CostType, hours: int, attendee_count: int) -> int:
    rate = room.rate_for(cost_type) or 0
    if cost_type is CostType.HOURLY:
        return rate * hours
    if cost_type is CostType.PER_ATTENDEE:
        return rate * attendee_count
    return rate


def room_cost(
    room: Room,
    cost_type: CostType,
    start: datetime,
    end: datetime,
    attendee_count: int,
    requested_facility_names: Iterable[str],
) -> CostLine:
    """Price one room for the interval.

    A missing rate prices the base at zero and flags the line. Requested
    facilities the room no longer offers are skipped.
    """
    hours = hours_ceil(start, end)
    rate_missing = room.rate_for(cost_type) is None
    if rate_missing:
        logger.warning(
            "Room %s has no %s rate; base cost priced at 0",
            room.room_id,
            cost_type.value,
        )

    charges: list[FacilityCharge] = []
    for name in requested_facility_names:
        facility = room.find_facility(name)
        if facility is None:
            logger.info("Skipping unknown facility %r for room %s", name, room.room_id)
            continue
        charges.append(FacilityCharge(name=facility.name, cost=facility.cost))

    return CostLine(
        room_id=room.room_id,
        room_name=room.name,
        cost_type=cost_type,
        base=_base_cost(room, cost_type, hours, attendee_count),
        facilities=tuple(charges),
        hours=hours,
        rate_missing=rate_missing,
    )


def aggregate(lines: Sequence[CostLine]) -> CostSummary:
    # every room of one booking shares the interval, so the first line's hours stand for all
    base_total = sum(line.base for line in lines)
    facility_total = sum(line.facility_total for line in lines)
    return CostSummary(
        base_total=base_total,
        facility_total=facility_total,
        grand_total=base_total + facility_total,
        hours=lines[0].hours if lines else 0,
        lines=tuple(lines),
    )


def format_minor_units(amount: int, currency_symbol: str = "€") -> str:
    """Display helper only; never feed the result back into cost math."""
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 100)
    return f"{sign}{currency_symbol}{major}.{minor:02d}"
