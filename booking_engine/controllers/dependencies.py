"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, Request, status

from booking_engine.services.booking_service import BookingService
from booking_engine.utils.config import Settings, get_settings


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = get_settings()
    return settings


def get_booking_service(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> BookingService:
    service = getattr(request.app.state, "booking_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = BookingService(repository=repository, settings=settings)
            request.app.state.booking_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized",
        )
    return service


def to_local_naive(value: datetime, timezone_name: str) -> datetime:
    """Convert an aware datetime to the booking timezone's wall clock."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(timezone_name)).replace(tzinfo=None)


def get_request_now(settings: Settings = Depends(get_app_settings)) -> datetime:
    """Read the clock once per request; every availability decision reuses it."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)
