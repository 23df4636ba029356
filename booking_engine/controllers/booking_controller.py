"""HTTP controller layer for room availability, quotes and bookings."""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from booking_engine.controllers.dependencies import (
    get_app_settings,
    get_booking_service,
    get_request_now,
    to_local_naive,
)
from booking_engine.domain.intervals import InvalidInterval
from booking_engine.domain.models import (
    BookingCandidate,
    BookingDetails,
    CostType,
    PricedBooking,
    Reservation,
    ReservationStatus,
    RoomSettings,
    RoomUnavailable,
)
from booking_engine.services.booking_service import (
    BookingService,
    BookingValidationError,
    InvalidStatusTransitionError,
    PricingValidationError,
    ReservationNotFoundError,
    RoomNotFoundError,
)
from booking_engine.services.cost_service import format_minor_units
from booking_engine.utils.config import Settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["booking"])


class IntervalRequest(BaseModel):
    """Input DTO for a single candidate interval."""

    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "IntervalRequest":
        if (self.start_time.tzinfo is None) != (self.end_time.tzinfo is None):
            raise ValueError("start_time and end_time must both include or both omit a UTC offset")
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class RoomSettingsRequest(BaseModel):
    room_id: int = Field(gt=0)
    cost_type: CostType = CostType.FLAT
    requested_facilities: list[str] = Field(default_factory=list)


class BookingCandidateRequest(IntervalRequest):
    attendees_count: int = Field(ge=1)
    rooms: list[RoomSettingsRequest] = Field(min_length=1)

    @field_validator("rooms")
    @classmethod
    def validate_unique_rooms(cls, value: list[RoomSettingsRequest]) -> list[RoomSettingsRequest]:
        room_ids = [item.room_id for item in value]
        if len(room_ids) != len(set(room_ids)):
            raise ValueError("each room may be selected only once")
        return value


class CreateBookingRequest(BookingCandidateRequest):
    title: str = Field(min_length=1)
    customer_name: str = Field(min_length=1)
    customer_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    purpose: str | None = None
    notes: str | None = None


class StatusUpdateRequest(BaseModel):
    status: ReservationStatus
    final_revenue: int | None = Field(default=None, ge=0)


class StatusChangeResponse(BaseModel):
    reservation_id: int
    previous_status: ReservationStatus
    status: ReservationStatus
    final_revenue: int | None = None


class FacilityChargeResponse(BaseModel):
    name: str
    cost: int = Field(ge=0)


class CostLineResponse(BaseModel):
    room_id: int
    room_name: str
    cost_type: CostType
    base: int = Field(ge=0)
    facilities: list[FacilityChargeResponse]
    hours: int = Field(ge=1)
    total: int = Field(ge=0)
    rate_missing: bool


class CostSummaryResponse(BaseModel):
    base_total: int = Field(ge=0)
    facility_total: int = Field(ge=0)
    grand_total: int = Field(ge=0)
    grand_total_display: str
    hours: int = Field(ge=0)
    lines: list[CostLineResponse]


class ConfirmedBookingResponse(BaseModel):
    reservation_id: int
    order_number: int
    status: ReservationStatus
    summary: CostSummaryResponse


class ReservationResponse(BaseModel):
    reservation_id: int
    start_time: datetime
    end_time: datetime
    status: ReservationStatus
    title: str | None


class AvailabilityCheckResponse(BaseModel):
    available: bool
    conflict: ReservationResponse | None = None


class DayAvailabilityResponse(BaseModel):
    day: date
    booked: bool
    available: bool


class RoomAvailabilityResponse(BaseModel):
    room_id: int
    horizon_start: date
    horizon_end: date
    booked_dates: list[date]
    days: list[DayAvailabilityResponse]


class HourSlotResponse(BaseModel):
    hour: int = Field(ge=0, le=23)
    label: str
    available: bool
    past: bool
    reservations: list[ReservationResponse]


class UtilizationResponse(BaseModel):
    room_id: int
    utilization: float = Field(ge=0.0, le=100.0)


def _reservation_response(reservation: Reservation) -> ReservationResponse:
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        start_time=reservation.start,
        end_time=reservation.end,
        status=reservation.status,
        title=reservation.title,
    )


def _summary_response(priced: PricedBooking, currency_symbol: str) -> CostSummaryResponse:
    summary = priced.summary
    return CostSummaryResponse(
        base_total=summary.base_total,
        facility_total=summary.facility_total,
        grand_total=summary.grand_total,
        grand_total_display=format_minor_units(summary.grand_total, currency_symbol),
        hours=summary.hours,
        lines=[
            CostLineResponse(
                room_id=line.room_id,
                room_name=line.room_name,
                cost_type=line.cost_type,
                base=line.base,
                facilities=[
                    FacilityChargeResponse(name=charge.name, cost=charge.cost)
                    for charge in line.facilities
                ],
                hours=line.hours,
                total=line.total,
                rate_missing=line.rate_missing,
            )
            for line in summary.lines
        ],
    )


def _conflict_response(result: RoomUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": result.message,
            "room_id": result.room_id,
            "reservation_id": result.reservation_id,
            "conflict_start": result.conflict_start.isoformat(),
            "conflict_end": result.conflict_end.isoformat(),
        },
    )


def _to_candidate(payload: BookingCandidateRequest, timezone_name: str) -> BookingCandidate:
    return BookingCandidate(
        start=to_local_naive(payload.start_time, timezone_name),
        end=to_local_naive(payload.end_time, timezone_name),
        attendee_count=payload.attendees_count,
        room_settings={
            item.room_id: RoomSettings(
                cost_type=item.cost_type,
                requested_facilities=tuple(item.requested_facilities),
            )
            for item in payload.rooms
        },
    )


@router.get(
    "/rooms/{room_id}/availability",
    response_model=RoomAvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def room_availability(
    room_id: int,
    horizon_days: int | None = Query(default=None, gt=0, le=366),
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_request_now),
) -> RoomAvailabilityResponse:
    """Day-level availability over the booking horizon."""
    try:
        index = service.availability(room_id, now=now, horizon_days=horizon_days)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc

    return RoomAvailabilityResponse(
        room_id=room_id,
        horizon_start=index.horizon_start,
        horizon_end=index.horizon_end,
        booked_dates=[date.fromisoformat(key) for key in index.booked_days()],
        days=[
            DayAvailabilityResponse(
                day=day,
                booked=index.is_booked(day),
                available=index.is_available(day),
            )
            for day in index.horizon()
        ],
    )


@router.get(
    "/rooms/{room_id}/availability/{day}",
    response_model=list[HourSlotResponse],
    status_code=status.HTTP_200_OK,
)
async def room_day_detail(
    room_id: int,
    day: date,
    service: BookingService = Depends(get_booking_service),
    now: datetime = Depends(get_request_now),
) -> list[HourSlotResponse]:
    """Hour-by-hour view of one day; days before today have no available slot."""
    try:
        slots = service.day_timeline(room_id, day, now=now)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return [
        HourSlotResponse(
            hour=slot.hour,
            label=slot.label,
            available=slot.available,
            past=slot.past,
            reservations=[_reservation_response(item) for item in slot.reservations],
        )
        for slot in slots
    ]


@router.post(
    "/rooms/{room_id}/check",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
)
async def check_room(
    room_id: int,
    payload: IntervalRequest,
    service: BookingService = Depends(get_booking_service),
    app_settings: Settings = Depends(get_app_settings),
) -> AvailabilityCheckResponse:
    try:
        conflict = service.check_availability(
            room_id,
            to_local_naive(payload.start_time, app_settings.timezone),
            to_local_naive(payload.end_time, app_settings.timezone),
        )
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidInterval, BookingValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if conflict is None:
        return AvailabilityCheckResponse(available=True)
    return AvailabilityCheckResponse(available=False, conflict=_reservation_response(conflict))


@router.get(
    "/rooms/{room_id}/utilization",
    response_model=UtilizationResponse,
    status_code=status.HTTP_200_OK,
)
async def utilization(
    room_id: int,
    start: datetime,
    end: datetime,
    service: BookingService = Depends(get_booking_service),
    app_settings: Settings = Depends(get_app_settings),
) -> UtilizationResponse:
    try:
        value = service.room_utilization(
            room_id,
            to_local_naive(start, app_settings.timezone),
            to_local_naive(end, app_settings.timezone),
        )
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidInterval as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return UtilizationResponse(room_id=room_id, utilization=value)


@router.get(
    "/rooms/utilization",
    response_model=list[UtilizationResponse],
    status_code=status.HTTP_200_OK,
)
async def overall_utilization(
    start: datetime,
    end: datetime,
    service: BookingService = Depends(get_booking_service),
    app_settings: Settings = Depends(get_app_settings),
) -> list[UtilizationResponse]:
    """Utilization of every active room over the same range."""
    try:
        values = service.overall_utilization(
            to_local_naive(start, app_settings.timezone),
            to_local_naive(end, app_settings.timezone),
        )
    except InvalidInterval as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [
        UtilizationResponse(room_id=room_id, utilization=value)
        for room_id, value in values.items()
    ]


@router.post(
    "/bookings/quote",
    response_model=CostSummaryResponse,
    status_code=status.HTTP_200_OK,
)
async def quote_booking(
    payload: BookingCandidateRequest,
    service: BookingService = Depends(get_booking_service),
    app_settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_request_now),
):
    """Price a candidate against current reservations; nothing is stored."""
    try:
        result = service.quote(_to_candidate(payload, app_settings.timezone), now=now)
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidInterval, BookingValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to price booking",
        ) from exc

    if isinstance(result, RoomUnavailable):
        return _conflict_response(result)
    return _summary_response(result, app_settings.currency_symbol)


@router.post(
    "/bookings",
    response_model=ConfirmedBookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    app_settings: Settings = Depends(get_app_settings),
    now: datetime = Depends(get_request_now),
):
    """Re-check availability inside the write transaction and store the booking."""
    details = BookingDetails(
        title=payload.title,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        purpose=payload.purpose,
        notes=payload.notes,
    )
    try:
        result = service.confirm_booking(
            _to_candidate(payload, app_settings.timezone),
            details,
            now=now,
        )
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (InvalidInterval, BookingValidationError, PricingValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected booking failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc

    if isinstance(result, RoomUnavailable):
        return _conflict_response(result)
    return ConfirmedBookingResponse(
        reservation_id=result.reservation_id,
        order_number=result.order_number,
        status=ReservationStatus.PENDING,
        summary=_summary_response(result.priced, app_settings.currency_symbol),
    )


@router.put(
    "/bookings/{reservation_id}/status",
    response_model=StatusChangeResponse,
    status_code=status.HTTP_200_OK,
)
async def update_booking_status(
    reservation_id: int,
    payload: StatusUpdateRequest,
    service: BookingService = Depends(get_booking_service),
) -> StatusChangeResponse:
    """Approve, reject, cancel or finish a reservation."""
    try:
        change = service.update_status(
            reservation_id,
            payload.status,
            final_revenue=payload.final_revenue,
        )
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except BookingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return StatusChangeResponse(
        reservation_id=change.reservation_id,
        previous_status=change.previous,
        status=change.status,
        final_revenue=change.final_revenue,
    )
