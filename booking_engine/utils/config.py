"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    horizon_days: int
    timezone: str
    allow_unpriced_bookings: bool
    seed_demo_data: bool
    currency_symbol: str


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with replace()."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Room Booking Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv(
                "BOOKING_DATABASE_PATH",
                str(PROJECT_ROOT / "data" / "bookings.db"),
            )
        ),
        horizon_days=_env_int("BOOKING_HORIZON_DAYS", 90),
        timezone=os.getenv("BOOKING_TIMEZONE", "UTC"),
        allow_unpriced_bookings=_env_bool("BOOKING_ALLOW_UNPRICED", False),
        seed_demo_data=_env_bool("BOOKING_SEED_DEMO_DATA", True),
        currency_symbol=os.getenv("BOOKING_CURRENCY_SYMBOL", "€"),
    )
