"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.policy_service import PolicyService
from booking_engine.utils.config import Settings


def _require_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_policy_service(request: Request) -> PolicyService:
    return _require_state(request, "policy_service", "Policy service")


def get_availability_service(request: Request) -> AvailabilityService:
    return _require_state(request, "availability_service", "Availability service")


def get_booking_service(request: Request) -> BookingService:
    return _require_state(request, "booking_service", "Booking service")


def get_app_settings(request: Request) -> Settings:
    return _require_state(request, "settings", "Settings")
