"""Process-wide logging for booking decisions and refusals."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from booking_engine.utils.config import Settings, get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGER_INITIALIZED = False


def configure_logging(
    settings: Optional[Settings] = None,
    level: Optional[str] = None,
) -> None:
    """Install the shared stdout handler once; later calls only re-level it.

    An explicit ``level`` wins over ``settings.log_level``. Submissions,
    lifecycle transitions and refusals all go through this one stream.
    """

    global _LOGGER_INITIALIZED
    resolved_level = (level or (settings or get_settings()).log_level).upper()

    if _LOGGER_INITIALIZED:
        logging.getLogger().setLevel(resolved_level)
        return

    logging.basicConfig(
        level=resolved_level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the requested module, configuring defaults first."""
    if not _LOGGER_INITIALIZED:
        configure_logging()
    return logging.getLogger(name)
