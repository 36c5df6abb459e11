"""HTTP controller layer for slot availability and booking policy."""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from booking_engine.controllers.dependencies import (
    get_availability_service,
    get_policy_service,
)
from booking_engine.domain.errors import FacilityNotFoundError, PolicyUnavailableError
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.policy_service import PolicyService, PolicyValidationError
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class TimeSlotResponse(BaseModel):
    id: str
    start_time: datetime
    end_time: datetime
    is_available: bool


class AvailabilityResponse(BaseModel):
    facility_id: int
    date: date
    slots: list[TimeSlotResponse]


class PolicyResponse(BaseModel):
    minimum_lead_hours: float = Field(ge=0.0)
    check_in_lead_minutes: int = Field(ge=0)
    check_in_grace_minutes: int = Field(ge=0)
    min_dwell_minutes_before_checkout: int = Field(ge=0)


class UpdatePolicyRequest(BaseModel):
    """Partial update; omitted fields keep their current values."""

    minimum_lead_hours: float | None = Field(default=None, ge=0.0)
    check_in_lead_minutes: int | None = Field(default=None, ge=0)
    check_in_grace_minutes: int | None = Field(default=None, ge=0)
    min_dwell_minutes_before_checkout: int | None = Field(default=None, ge=0)


def _policy_unavailable(exc: PolicyUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"reason": "POLICY_UNAVAILABLE", "message": str(exc)},
    )


@router.get(
    "/facilities/{facility_id}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def get_availability(
    facility_id: int,
    target_date: date = Query(alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Return the slot grid with availability evaluated at request time."""
    try:
        slots = service.compute_availability(facility_id, target_date)
        return AvailabilityResponse(
            facility_id=facility_id,
            date=target_date,
            slots=[
                TimeSlotResponse(
                    id=slot.slot_id,
                    start_time=slot.start,
                    end_time=slot.end,
                    is_available=slot.available,
                )
                for slot in slots
            ],
        )
    except FacilityNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except PolicyUnavailableError as exc:
        raise _policy_unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc


@router.get(
    "/system-settings",
    response_model=PolicyResponse,
    status_code=status.HTTP_200_OK,
)
async def get_system_settings(
    service: PolicyService = Depends(get_policy_service),
) -> PolicyResponse:
    try:
        return PolicyResponse(**service.get_policy().to_dict())
    except PolicyUnavailableError as exc:
        raise _policy_unavailable(exc) from exc


@router.put(
    "/system-settings",
    response_model=PolicyResponse,
    status_code=status.HTTP_200_OK,
)
async def update_system_settings(
    payload: UpdatePolicyRequest,
    service: PolicyService = Depends(get_policy_service),
) -> PolicyResponse:
    try:
        policy = service.update_policy(**payload.model_dump())
        return PolicyResponse(**policy.to_dict())
    except PolicyValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PolicyUnavailableError as exc:
        raise _policy_unavailable(exc) from exc
