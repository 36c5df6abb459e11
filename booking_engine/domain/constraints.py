"""Domain-level validation rules for booking policy values."""

from __future__ import annotations

from datetime import timedelta

from booking_engine.domain.models import OperatingHours, Policy


def validate_policy(policy: Policy) -> None:
    if policy.minimum_lead_hours < 0:
        raise ValueError("minimum_lead_hours must be >= 0")
    if policy.check_in_lead_minutes < 0:
        raise ValueError("check_in_lead_minutes must be >= 0")
    if policy.check_in_grace_minutes < 0:
        raise ValueError("check_in_grace_minutes must be >= 0")
    if policy.min_dwell_minutes_before_checkout < 0:
        raise ValueError("min_dwell_minutes_before_checkout must be >= 0")


def validate_operating_hours(hours: OperatingHours, slot_duration: timedelta) -> None:
    if slot_duration <= timedelta(0):
        raise ValueError("slot duration must be > 0")
    if hours.open_time >= hours.close_time:
        raise ValueError("open_time must be earlier than close_time")
    open_minutes = hours.open_time.hour * 60 + hours.open_time.minute
    close_minutes = hours.close_time.hour * 60 + hours.close_time.minute
    if timedelta(minutes=close_minutes - open_minutes) % slot_duration:
        raise ValueError("operating window must be a whole number of slots")
