"""ASGI entry point: builds the booking API and prepares its database.

``uvicorn app:app`` serves the module-level ``app``; tests call
``create_app`` with their own settings.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from booking_engine.controllers.booking_controller import router as booking_router
from booking_engine.domain.constraints import validate_engine_settings
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.booking_service import BookingService
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every dependency is created here and injected via app.state, so handlers
    never construct their own repository.
    """
    settings = settings or get_settings()
    validate_engine_settings(settings)

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services (engine orchestration, no direct SQL) ---
    booking_service = BookingService(
        repository=repository,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(booking_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.booking_service = booking_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the demo room catalogue is seeded.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo rooms (skipped if Rooms table not empty)")
        repository.seed_demo_rooms_if_empty()

    logger.info("Booking engine ready (database %s)", settings.database_path)


# Module-level app object for uvicorn
app = create_app()
