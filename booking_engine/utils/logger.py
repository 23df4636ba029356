"""Logging setup shared by the engine, repository and HTTP layers."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from booking_engine.utils.config import get_settings


ROOT_LOGGER_NAME = "booking_engine"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Attach one stdout handler to the package logger, once per process.

    Only the ``booking_engine`` hierarchy is configured, so uvicorn's own
    loggers and pytest's capture handlers are left alone. Records still
    propagate to the root logger.
    """
    global _configured
    if _configured:
        return

    resolved_level = (level or get_settings().log_level).upper()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(resolved_level)
    package_logger.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger inside the package hierarchy; ``app`` becomes ``booking_engine.app``."""
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
