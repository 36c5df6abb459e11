"""Wall-clock helpers for the facility time zone."""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from booking_engine.utils.config import Settings


Clock = Callable[[], datetime]


def facility_clock(settings: Settings) -> Clock:
    """Return a clock yielding naive local time in the configured zone.

    Reservation timestamps are stored as naive facility-local wall-clock
    values, so ``now`` must be expressed the same way.
    """
    zone = ZoneInfo(settings.timezone)

    def _now() -> datetime:
        return datetime.now(zone).replace(tzinfo=None)

    return _now


def to_facility_time(value: datetime, settings: Settings) -> datetime:
    """Drop tzinfo after converting aware values into the facility zone."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)
