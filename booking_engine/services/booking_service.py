"""Booking submission and reservation lifecycle orchestration."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from threading import RLock
from typing import Optional

from booking_engine.domain import lifecycle
from booking_engine.domain.errors import (
    BookingValidationError,
    InvalidTransitionError,
    ReservationNotFoundError,
    TransitionReason,
    ValidationReason,
)
from booking_engine.domain.models import BookingDetails, Facility, Policy, Reservation
from booking_engine.domain.slots import is_within_lead_window, slots_spanning
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.policy_service import PolicyService
from booking_engine.utils.clock import Clock, facility_clock
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class BookingService:
    """Validates booking requests and drives reservations through their lifecycle.

    Every public operation captures ``now`` once (unless the caller passes
    one) and evaluates all of its guards against that single instant.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        policy_service: Optional[PolicyService] = None,
        availability_service: Optional[AvailabilityService] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._policy_service = policy_service or PolicyService(
            repository=self._repository,
            settings=self._settings,
        )
        self._clock = clock or facility_clock(self._settings)
        self._availability_service = availability_service or AvailabilityService(
            repository=self._repository,
            settings=self._settings,
            policy_service=self._policy_service,
            clock=self._clock,
        )
        self._submit_lock = RLock()

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self._repository.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def list_reservations_for_requester(self, requester_id: str) -> list[Reservation]:
        return self._repository.list_reservations_for_requester(requester_id)

    def submit_booking(
        self,
        facility_id: int,
        requester_id: str,
        start: datetime,
        end: datetime,
        details: BookingDetails,
        now: Optional[datetime] = None,
    ) -> Reservation:
        current = now or self._clock()
        facility = self._availability_service.get_facility(facility_id)
        self._validate_request_shape(facility, start, end, details)

        policy = self._policy_service.get_policy()
        self._validate_timing(start, current, policy)

        with self._submit_lock:
            self._validate_slots(facility, start, end, current, policy)
            reservation = self._repository.create_reservation(
                facility_id=facility.facility_id,
                requester_id=requester_id,
                start=start,
                end=end,
                details=details,
                created_at=current,
            )
        logger.info(
            "Reservation %s submitted facility=%s requester=%s %s-%s",
            reservation.reservation_id,
            facility.facility_id,
            requester_id,
            start.isoformat(),
            end.isoformat(),
        )
        return reservation

    def _validate_request_shape(
        self,
        facility: Facility,
        start: datetime,
        end: datetime,
        details: BookingDetails,
    ) -> None:
        if end <= start:
            raise BookingValidationError(
                ValidationReason.INVALID_INTERVAL,
                "end must be later than start",
            )
        if end.date() != start.date():
            raise BookingValidationError(
                ValidationReason.INVALID_INTERVAL,
                "start and end must fall on the same date",
            )
        hours = facility.operating_hours
        if start < hours.opens_on(start.date()) or end > hours.closes_on(start.date()):
            raise BookingValidationError(
                ValidationReason.OUTSIDE_OPERATING_HOURS,
                f"{facility.name} is open {hours.open_time:%H:%M}-{hours.close_time:%H:%M}",
            )
        if details.attendees < 1:
            raise BookingValidationError(
                ValidationReason.INVALID_ATTENDEES,
                "attendees must be at least 1",
            )
        if details.attendees > facility.capacity:
            raise BookingValidationError(
                ValidationReason.CAPACITY_EXCEEDED,
                f"{facility.name} holds at most {facility.capacity} people",
            )

    def _validate_timing(self, start: datetime, now: datetime, policy: Policy) -> None:
        if start <= now:
            raise BookingValidationError(
                ValidationReason.PAST_START,
                "Booking start is in the past",
            )
        last_bookable_date = now.date() + timedelta(days=self._settings.max_advance_days)
        if start.date() > last_bookable_date:
            raise BookingValidationError(
                ValidationReason.ADVANCE_WINDOW_EXCEEDED,
                f"Bookings open at most {self._settings.max_advance_days} days ahead",
            )
        if is_within_lead_window(start, now, policy.minimum_lead_hours):
            raise BookingValidationError(
                ValidationReason.LEAD_TIME_TOO_SHORT,
                f"Bookings must be made at least {policy.minimum_lead_hours:g} hours ahead",
            )

    def _validate_slots(
        self,
        facility: Facility,
        start: datetime,
        end: datetime,
        now: datetime,
        policy: Policy,
    ) -> None:
        """Require every slot the interval touches to be open right now."""
        target_date: date = start.date()
        slots = self._availability_service.evaluate_slots(facility, target_date, now, policy)
        for slot in slots_spanning(slots, start, end):
            if slot.available:
                continue
            if slot.start <= now:
                reason = ValidationReason.PAST_START
            elif is_within_lead_window(slot.start, now, policy.minimum_lead_hours):
                reason = ValidationReason.LEAD_TIME_TOO_SHORT
            else:
                reason = ValidationReason.SLOT_TAKEN
            logger.info(
                "Booking refused facility=%s slot=%s reason=%s",
                facility.facility_id,
                slot.slot_id,
                reason.value,
            )
            raise BookingValidationError(
                reason,
                f"Slot {slot.start:%H:%M}-{slot.end:%H:%M} is not available",
            )

    def approve(self, reservation_id: int, now: Optional[datetime] = None) -> Reservation:
        current = now or self._clock()
        reservation = self.get_reservation(reservation_id)
        updated = lifecycle.approve(reservation, current)
        return self._persist(reservation, updated, "approved")

    def reject(
        self,
        reservation_id: int,
        reason: str,
        now: Optional[datetime] = None,
    ) -> Reservation:
        current = now or self._clock()
        reservation = self.get_reservation(reservation_id)
        updated = lifecycle.reject(reservation, reason, current)
        return self._persist(reservation, updated, "rejected")

    def cancel(
        self,
        reservation_id: int,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        current = now or self._clock()
        reservation = self.get_reservation(reservation_id)
        updated = lifecycle.cancel(
            reservation,
            current,
            notice_hours=self._settings.cancellation_notice_hours,
            reason=reason,
        )
        return self._persist(reservation, updated, "cancelled")

    def check_in(
        self,
        reservation_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        current = now or self._clock()
        reservation = self.get_reservation(reservation_id)
        policy = self._policy_service.get_policy()
        try:
            updated = lifecycle.check_in(reservation, policy, current, note=note)
        except InvalidTransitionError as exc:
            logger.info(
                "Check-in refused reservation=%s reason=%s",
                reservation_id,
                exc.reason.value,
            )
            raise
        return self._persist(reservation, updated, "checked in")

    def check_out(
        self,
        reservation_id: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        current = now or self._clock()
        reservation = self.get_reservation(reservation_id)
        policy = self._policy_service.get_policy()
        try:
            updated = lifecycle.check_out(reservation, policy, current, note=note)
        except InvalidTransitionError as exc:
            logger.info(
                "Check-out refused reservation=%s reason=%s",
                reservation_id,
                exc.reason.value,
            )
            raise
        return self._persist(reservation, updated, "checked out")

    def _persist(self, original: Reservation, updated: Reservation, action: str) -> Reservation:
        """Write ``updated`` unless the stored row moved on since ``original`` was read."""
        if not self._repository.save_reservation(updated, expected=original):
            logger.warning(
                "Reservation %s not %s: changed concurrently (was %s)",
                original.reservation_id,
                action,
                original.status.value,
            )
            raise InvalidTransitionError(
                TransitionReason.WRONG_STATE,
                f"Reservation {original.reservation_id} was modified by another request",
            )
        logger.info(
            "Reservation %s %s (status=%s)",
            updated.reservation_id,
            action,
            updated.status.value,
        )
        return updated
