"""HTTP controller layer for booking submission and lifecycle actions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from booking_engine.controllers.dependencies import get_app_settings, get_booking_service
from booking_engine.domain.errors import (
    BookingEngineError,
    BookingValidationError,
    FacilityNotFoundError,
    InvalidTransitionError,
    PolicyUnavailableError,
    ReservationNotFoundError,
    ValidationReason,
)
from booking_engine.domain.models import BookingDetails, Reservation
from booking_engine.services.booking_service import BookingService
from booking_engine.utils.clock import to_facility_time
from booking_engine.utils.config import Settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


class SubmitBookingRequest(BaseModel):
    """Input DTO; handlers normalize timestamps to facility wall-clock time."""

    facility_id: int = Field(gt=0)
    requester_id: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    purpose: str = Field(min_length=1)
    attendees: int = Field(default=1, ge=1)
    notes: Optional[str] = None

    @field_validator("purpose")
    @classmethod
    def validate_purpose(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("purpose must be non-empty")
        return value.strip()


class RejectBookingRequest(BaseModel):
    reason: str = Field(min_length=1)


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = None


class AttendanceNoteRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class ReservationResponse(BaseModel):
    id: int
    facility_id: int
    requester_id: str
    start_time: datetime
    end_time: datetime
    status: str
    purpose: str
    attendees: int
    notes: Optional[str] = None
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    check_in_note: Optional[str] = None
    check_out_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationResponse":
        return cls(
            id=reservation.reservation_id,
            facility_id=reservation.facility_id,
            requester_id=reservation.requester_id,
            start_time=reservation.start,
            end_time=reservation.end,
            status=reservation.status.value,
            purpose=reservation.purpose,
            attendees=reservation.attendees,
            notes=reservation.notes,
            check_in_at=reservation.check_in_at,
            check_out_at=reservation.check_out_at,
            check_in_note=reservation.check_in_note,
            check_out_note=reservation.check_out_note,
            rejection_reason=reservation.rejection_reason,
            cancellation_reason=reservation.cancellation_reason,
        )


_VALIDATION_STATUS = {
    ValidationReason.SLOT_TAKEN: status.HTTP_409_CONFLICT,
}


def _to_http_exception(exc: BookingEngineError) -> HTTPException:
    if isinstance(exc, (FacilityNotFoundError, ReservationNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PolicyUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"reason": "POLICY_UNAVAILABLE", "message": str(exc)},
        )
    if isinstance(exc, BookingValidationError):
        return HTTPException(
            status_code=_VALIDATION_STATUS.get(exc.reason, status.HTTP_422_UNPROCESSABLE_ENTITY),
            detail={"reason": exc.reason.value, "message": str(exc)},
        )
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "reason": exc.reason.value,
                "message": str(exc),
                "available_at": exc.available_at.isoformat() if exc.available_at else None,
            },
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_booking(
    payload: SubmitBookingRequest,
    service: BookingService = Depends(get_booking_service),
    settings: Settings = Depends(get_app_settings),
) -> ReservationResponse:
    """Create a pending reservation after re-validating availability."""
    try:
        reservation = service.submit_booking(
            facility_id=payload.facility_id,
            requester_id=payload.requester_id,
            start=to_facility_time(payload.start_time, settings),
            end=to_facility_time(payload.end_time, settings),
            details=BookingDetails(
                purpose=payload.purpose,
                attendees=payload.attendees,
                notes=payload.notes,
            ),
        )
        return ReservationResponse.from_domain(reservation)
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking submission failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit booking",
        ) from exc


@router.get(
    "",
    response_model=list[ReservationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_bookings(
    requester_id: str = Query(min_length=1),
    service: BookingService = Depends(get_booking_service),
) -> list[ReservationResponse]:
    """Return a requester's reservations, newest first."""
    return [
        ReservationResponse.from_domain(reservation)
        for reservation in service.list_reservations_for_requester(requester_id)
    ]


@router.get(
    "/{reservation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_booking(
    reservation_id: int,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    try:
        return ReservationResponse.from_domain(service.get_reservation(reservation_id))
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/{reservation_id}/approve",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def approve_booking(
    reservation_id: int,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    try:
        return ReservationResponse.from_domain(service.approve(reservation_id))
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/{reservation_id}/reject",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def reject_booking(
    reservation_id: int,
    payload: RejectBookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    try:
        return ReservationResponse.from_domain(service.reject(reservation_id, payload.reason))
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/{reservation_id}/cancel",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(
    reservation_id: int,
    payload: Optional[CancelBookingRequest] = None,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    reason = payload.reason if payload else None
    try:
        return ReservationResponse.from_domain(
            service.cancel(reservation_id, reason=reason)
        )
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/{reservation_id}/check-in",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def check_in_booking(
    reservation_id: int,
    payload: Optional[AttendanceNoteRequest] = None,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    note = payload.note if payload else None
    try:
        return ReservationResponse.from_domain(service.check_in(reservation_id, note=note))
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/{reservation_id}/check-out",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def check_out_booking(
    reservation_id: int,
    payload: Optional[AttendanceNoteRequest] = None,
    service: BookingService = Depends(get_booking_service),
) -> ReservationResponse:
    note = payload.note if payload else None
    try:
        return ReservationResponse.from_domain(service.check_out(reservation_id, note=note))
    except BookingEngineError as exc:
        raise _to_http_exception(exc) from exc
