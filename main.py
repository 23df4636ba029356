"""
main.py: development launcher for the booking API.

    python main.py

Application wiring lives in app.py. Host and port come from BOOKING_HOST and
BOOKING_PORT; the equivalent direct command is:

    uvicorn app:app --reload
"""

from __future__ import annotations

import os

import uvicorn

from booking_engine.utils.config import get_settings


def main() -> None:
    settings = get_settings()
    host = os.getenv("BOOKING_HOST", "127.0.0.1")
    port = int(os.getenv("BOOKING_PORT", "8000"))

    print(f"{settings.app_name} {settings.app_version}")
    print(f"  database : {settings.database_path}")
    print(f"  timezone : {settings.timezone}")
    print(f"  API docs : http://{host}:{port}/docs")

    uvicorn.run(
        "app:app",
        host=host,
        port=port,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
