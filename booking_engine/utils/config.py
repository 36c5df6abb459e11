"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_optional_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    if not raw.strip() or raw.strip().lower() == "none":
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    timezone: str
    slot_duration_minutes: int
    default_open_time: str
    default_close_time: str
    cancellation_notice_hours: float | None
    max_advance_days: int
    default_minimum_lead_hours: float
    default_check_in_lead_minutes: int
    default_check_in_grace_minutes: int
    default_min_dwell_minutes_before_checkout: int
    seed_demo_facilities: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants via ``replace``."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Facility Booking Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "booking.db"))
        ),
        timezone=os.getenv("BOOKING_TIMEZONE", "Asia/Ho_Chi_Minh"),
        slot_duration_minutes=_env_int("SLOT_DURATION_MINUTES", 60),
        default_open_time=os.getenv("DEFAULT_OPEN_TIME", "07:00"),
        default_close_time=os.getenv("DEFAULT_CLOSE_TIME", "21:00"),
        cancellation_notice_hours=_env_optional_float("CANCELLATION_NOTICE_HOURS", 24.0),
        max_advance_days=_env_int("MAX_ADVANCE_DAYS", 14),
        default_minimum_lead_hours=_env_float("DEFAULT_MINIMUM_LEAD_HOURS", 3.0),
        default_check_in_lead_minutes=_env_int("DEFAULT_CHECK_IN_LEAD_MINUTES", 15),
        default_check_in_grace_minutes=_env_int("DEFAULT_CHECK_IN_GRACE_MINUTES", 15),
        default_min_dwell_minutes_before_checkout=_env_int(
            "DEFAULT_MIN_DWELL_MINUTES_BEFORE_CHECKOUT", 0
        ),
        seed_demo_facilities=os.getenv("SEED_DEMO_FACILITIES", "true").lower()
        in {"1", "true", "yes"},
    )
