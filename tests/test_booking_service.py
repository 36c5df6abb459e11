from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from booking_engine.domain import lifecycle
from booking_engine.domain.errors import (
    BookingValidationError,
    FacilityNotFoundError,
    InvalidTransitionError,
    PolicyUnavailableError,
    ReservationNotFoundError,
    TransitionReason,
    ValidationReason,
)
from booking_engine.domain.models import BookingDetails, ReservationStatus
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.policy_service import PolicyService, PolicyValidationError
from booking_engine.utils.config import get_settings


NOW = datetime(2026, 3, 2, 7, 36)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)
DETAILS = BookingDetails(purpose="Project meeting", attendees=6)


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "slot_duration_minutes": 60,
        "default_open_time": "07:00",
        "default_close_time": "21:00",
        "cancellation_notice_hours": 24.0,
        "max_advance_days": 14,
        "default_minimum_lead_hours": 3.0,
        "default_check_in_lead_minutes": 15,
        "default_check_in_grace_minutes": 15,
        "default_min_dwell_minutes_before_checkout": 0,
    }
    values.update(overrides)
    return replace(base, **values)


def _build_services(tmp_path, filename: str = "booking.db", seed_policy: bool = True, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_facilities()
    if seed_policy:
        repository.seed_default_policy()

    def clock() -> datetime:
        return NOW

    policy_service = PolicyService(repository=repository, settings=settings)
    availability_service = AvailabilityService(
        repository=repository,
        settings=settings,
        policy_service=policy_service,
        clock=clock,
    )
    booking_service = BookingService(
        repository=repository,
        settings=settings,
        policy_service=policy_service,
        availability_service=availability_service,
        clock=clock,
    )
    return repository, availability_service, booking_service


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def _submit(service: BookingService, start: datetime, end: datetime, **kwargs):
    return service.submit_booking(
        facility_id=kwargs.pop("facility_id", 1),
        requester_id=kwargs.pop("requester_id", "student-1"),
        start=start,
        end=end,
        details=kwargs.pop("details", DETAILS),
        **kwargs,
    )


def _validation_reason(service: BookingService, start: datetime, end: datetime, **kwargs) -> ValidationReason:
    with pytest.raises(BookingValidationError) as excinfo:
        _submit(service, start, end, **kwargs)
    return excinfo.value.reason


# --- Availability ---

def test_availability_today_applies_policy_lead_time(tmp_path):
    _, availability_service, _ = _build_services(tmp_path)
    slots = availability_service.compute_availability(1, TODAY)

    assert len(slots) == 14
    blocked = [slot.start.hour for slot in slots if not slot.available]
    assert blocked == [7, 8, 9, 10]


def test_availability_reflects_stored_reservations(tmp_path):
    _, availability_service, booking_service = _build_services(tmp_path)
    _submit(booking_service, _at(TOMORROW, 8), _at(TOMORROW, 10, 30))

    slots = availability_service.compute_availability(1, TOMORROW)
    availability = {slot.start.hour: slot.available for slot in slots}

    assert availability[7] is True
    assert availability[8] is False
    assert availability[9] is False
    assert availability[10] is False
    assert availability[11] is True


def test_availability_unknown_facility(tmp_path):
    _, availability_service, _ = _build_services(tmp_path)
    with pytest.raises(FacilityNotFoundError):
        availability_service.compute_availability(999, TOMORROW)


def test_availability_without_policy_raises_policy_unavailable(tmp_path):
    _, availability_service, _ = _build_services(tmp_path, seed_policy=False)
    with pytest.raises(PolicyUnavailableError):
        availability_service.compute_availability(1, TOMORROW)


def test_policy_store_failure_is_surfaced(tmp_path, monkeypatch):
    repository, availability_service, _ = _build_services(tmp_path)

    def _broken_policy():
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository, "get_policy", _broken_policy)
    with pytest.raises(PolicyUnavailableError) as excinfo:
        availability_service.compute_availability(1, TOMORROW)
    assert excinfo.value.retryable is False


# --- Submission ---

def test_submit_creates_pending_reservation(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)

    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 11))

    assert reservation.status is ReservationStatus.PENDING
    assert reservation.created_at == NOW
    assert reservation.attendees == 6
    assert repository.list_reservations_for_requester("student-1") == [reservation]
    assert booking_service.get_reservation(reservation.reservation_id) == reservation


def test_submit_overlapping_slot_is_taken(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)
    _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10, 30))

    reason = _validation_reason(booking_service, _at(TOMORROW, 10), _at(TOMORROW, 11), requester_id="student-2")

    assert reason is ValidationReason.SLOT_TAKEN
    assert repository.list_reservations_for_requester("student-2") == []


def test_submit_adjacent_slot_is_allowed(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    second = _submit(booking_service, _at(TOMORROW, 10), _at(TOMORROW, 11), requester_id="student-2")
    assert second.status is ReservationStatus.PENDING


def test_submit_other_facility_is_independent(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    other = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10), facility_id=2)
    assert other.facility_id == 2


def test_submit_inside_lead_window_is_refused(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    assert _validation_reason(booking_service, _at(TODAY, 10), _at(TODAY, 11)) is ValidationReason.LEAD_TIME_TOO_SHORT


def test_submit_at_lead_threshold_is_allowed(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TODAY, 11), _at(TODAY, 12))
    assert reservation.status is ReservationStatus.PENDING


def test_submit_in_past_is_refused(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    assert _validation_reason(booking_service, _at(TODAY, 7), _at(TODAY, 8)) is ValidationReason.PAST_START


def test_submit_outside_operating_hours(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    assert (
        _validation_reason(booking_service, _at(TOMORROW, 20), _at(TOMORROW, 22))
        is ValidationReason.OUTSIDE_OPERATING_HOURS
    )
    assert (
        _validation_reason(booking_service, _at(TOMORROW, 6), _at(TOMORROW, 8))
        is ValidationReason.OUTSIDE_OPERATING_HOURS
    )


def test_submit_inverted_interval(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    assert _validation_reason(booking_service, _at(TOMORROW, 10), _at(TOMORROW, 10)) is ValidationReason.INVALID_INTERVAL
    assert _validation_reason(booking_service, _at(TOMORROW, 11), _at(TOMORROW, 10)) is ValidationReason.INVALID_INTERVAL


def test_inverted_interval_reported_before_policy_lookup(tmp_path):
    _, _, booking_service = _build_services(tmp_path, seed_policy=False)
    assert _validation_reason(booking_service, _at(TOMORROW, 11), _at(TOMORROW, 10)) is ValidationReason.INVALID_INTERVAL


def test_submit_beyond_advance_window(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    far_day = TODAY + timedelta(days=15)
    assert (
        _validation_reason(booking_service, _at(far_day, 9), _at(far_day, 10))
        is ValidationReason.ADVANCE_WINDOW_EXCEEDED
    )


def test_submit_over_capacity(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    crowd = BookingDetails(purpose="Club fair", attendees=500)
    assert (
        _validation_reason(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10), details=crowd)
        is ValidationReason.CAPACITY_EXCEEDED
    )


def test_submit_unknown_facility(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    with pytest.raises(FacilityNotFoundError):
        _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10), facility_id=404)


def test_cancelled_reservation_frees_slot(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    first = _submit(booking_service, _at(TOMORROW + timedelta(days=1), 9), _at(TOMORROW + timedelta(days=1), 10))
    booking_service.cancel(first.reservation_id, reason="Plans changed")

    second = _submit(
        booking_service,
        _at(TOMORROW + timedelta(days=1), 9),
        _at(TOMORROW + timedelta(days=1), 10),
        requester_id="student-2",
    )
    assert second.status is ReservationStatus.PENDING


def test_rejected_reservation_frees_slot(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    first = _submit(booking_service, _at(TOMORROW, 14), _at(TOMORROW, 15))
    booking_service.reject(first.reservation_id, "Facility reserved for exams")

    second = _submit(booking_service, _at(TOMORROW, 14), _at(TOMORROW, 15), requester_id="student-2")
    assert second.status is ReservationStatus.PENDING


# --- Lifecycle through the service ---

def test_full_lifecycle_persists_each_transition(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 11))
    booking_service.approve(reservation.reservation_id)

    checked_in = booking_service.check_in(reservation.reservation_id, now=_at(TOMORROW, 8, 50))
    assert checked_in.check_in_at == _at(TOMORROW, 8, 50)

    checked_out = booking_service.check_out(reservation.reservation_id, now=_at(TOMORROW, 10, 45))
    stored = repository.get_reservation(reservation.reservation_id)

    assert checked_out.status is ReservationStatus.COMPLETED
    assert stored is not None
    assert stored.status is ReservationStatus.COMPLETED
    assert stored.check_in_at == _at(TOMORROW, 8, 50)
    assert stored.check_out_at == _at(TOMORROW, 10, 45)


def test_check_in_too_early_through_service(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    booking_service.approve(reservation.reservation_id)

    with pytest.raises(InvalidTransitionError) as excinfo:
        booking_service.check_in(reservation.reservation_id, now=_at(TOMORROW, 8, 44))
    assert excinfo.value.reason is TransitionReason.TOO_EARLY


def test_check_in_uses_current_policy(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    booking_service.approve(reservation.reservation_id)
    PolicyService(repository=repository).update_policy(check_in_lead_minutes=30)

    checked_in = booking_service.check_in(reservation.reservation_id, now=_at(TOMORROW, 8, 35))
    assert checked_in.check_in_at == _at(TOMORROW, 8, 35)


def test_cancel_inside_notice_window_is_refused(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TODAY, 11), _at(TODAY, 12))

    with pytest.raises(InvalidTransitionError) as excinfo:
        booking_service.cancel(reservation.reservation_id)
    assert excinfo.value.reason is TransitionReason.CANCELLATION_CUTOFF


def test_cancel_cutoff_can_be_disabled(tmp_path):
    _, _, booking_service = _build_services(tmp_path, cancellation_notice_hours=None)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    cancelled = booking_service.cancel(reservation.reservation_id)
    assert cancelled.status is ReservationStatus.CANCELLED


def test_unknown_reservation(tmp_path):
    _, _, booking_service = _build_services(tmp_path)
    with pytest.raises(ReservationNotFoundError):
        booking_service.check_in(12345)


def test_check_in_and_out_notes_are_persisted(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    booking_service.approve(reservation.reservation_id)

    booking_service.check_in(reservation.reservation_id, note=" Projector key collected ", now=_at(TOMORROW, 9))
    booking_service.check_out(reservation.reservation_id, note="Room tidied", now=_at(TOMORROW, 10))

    stored = repository.get_reservation(reservation.reservation_id)
    assert stored is not None
    assert stored.check_in_note == "Projector key collected"
    assert stored.check_out_note == "Room tidied"


# --- Concurrent lifecycle writes ---

def test_stale_snapshot_cannot_overwrite_stored_transition(tmp_path):
    repository, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    first_read = repository.get_reservation(reservation.reservation_id)
    second_read = repository.get_reservation(reservation.reservation_id)

    rejected = lifecycle.reject(first_read, "Room under repair", NOW)
    approved = lifecycle.approve(second_read, NOW)

    assert repository.save_reservation(rejected, expected=first_read) is True
    assert repository.save_reservation(approved, expected=second_read) is False
    stored = repository.get_reservation(reservation.reservation_id)
    assert stored is not None
    assert stored.status is ReservationStatus.REJECTED


def test_service_refuses_transition_computed_from_stale_row(tmp_path, monkeypatch):
    repository, _, booking_service = _build_services(tmp_path)
    reservation = _submit(booking_service, _at(TOMORROW, 9), _at(TOMORROW, 10))
    stale = repository.get_reservation(reservation.reservation_id)
    booking_service.reject(reservation.reservation_id, "Room under repair")
    read_from_store = repository.get_reservation

    monkeypatch.setattr(repository, "get_reservation", lambda reservation_id: stale)
    with pytest.raises(InvalidTransitionError) as excinfo:
        booking_service.approve(reservation.reservation_id)

    assert excinfo.value.reason is TransitionReason.WRONG_STATE
    assert read_from_store(reservation.reservation_id).status is ReservationStatus.REJECTED


# --- Policy store ---

def test_policy_partial_update_keeps_other_fields(tmp_path):
    repository, _, _ = _build_services(tmp_path)
    service = PolicyService(repository=repository)

    updated = service.update_policy(minimum_lead_hours=1.5)

    assert updated.minimum_lead_hours == 1.5
    assert updated.check_in_lead_minutes == 15
    assert service.get_policy() == updated


def test_policy_update_rejects_negative_values(tmp_path):
    repository, _, _ = _build_services(tmp_path)
    with pytest.raises(PolicyValidationError):
        PolicyService(repository=repository).update_policy(check_in_grace_minutes=-5)
