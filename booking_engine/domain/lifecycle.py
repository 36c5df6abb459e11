"""Reservation state machine with time-gated check-in and check-out.

Transitions never mutate their input; each returns a new ``Reservation`` with
the updated status and timestamps. ``now`` is always supplied by the caller so
a single decision is evaluated against one instant.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from booking_engine.domain.errors import InvalidTransitionError, TransitionReason
from booking_engine.domain.models import Policy, Reservation, ReservationStatus


ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset(
        {
            ReservationStatus.APPROVED,
            ReservationStatus.REJECTED,
            ReservationStatus.CANCELLED,
        }
    ),
    ReservationStatus.APPROVED: frozenset(
        {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}
    ),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.COMPLETED: frozenset(),
}


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _require_transition(reservation: Reservation, target: ReservationStatus) -> None:
    if not can_transition(reservation.status, target):
        raise InvalidTransitionError(
            TransitionReason.WRONG_STATE,
            f"Reservation {reservation.reservation_id} cannot move from "
            f"{reservation.status.value} to {target.value}",
        )


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None or not note.strip():
        return None
    return note.strip()


def check_in_window(reservation: Reservation, policy: Policy) -> tuple[datetime, datetime]:
    """Return the inclusive ``(opens_at, closes_at)`` check-in window."""
    opens_at = reservation.start - timedelta(minutes=policy.check_in_lead_minutes)
    closes_at = reservation.start + timedelta(minutes=policy.check_in_grace_minutes)
    return opens_at, closes_at


def earliest_check_out(check_in_at: datetime, policy: Policy) -> datetime:
    return check_in_at + timedelta(minutes=policy.min_dwell_minutes_before_checkout)


def approve(reservation: Reservation, now: datetime) -> Reservation:
    _require_transition(reservation, ReservationStatus.APPROVED)
    return replace(reservation, status=ReservationStatus.APPROVED, updated_at=now)


def reject(reservation: Reservation, reason: str, now: datetime) -> Reservation:
    if not reason or not reason.strip():
        raise InvalidTransitionError(
            TransitionReason.REASON_REQUIRED,
            "A rejection reason is required",
        )
    _require_transition(reservation, ReservationStatus.REJECTED)
    return replace(
        reservation,
        status=ReservationStatus.REJECTED,
        rejection_reason=reason.strip(),
        updated_at=now,
    )


def cancel(
    reservation: Reservation,
    now: datetime,
    notice_hours: Optional[float] = None,
    reason: Optional[str] = None,
) -> Reservation:
    """Cancel a pending or approved reservation.

    ``notice_hours`` is the minimum gap between ``now`` and the reservation
    start; ``None`` disables the cutoff.
    """
    _require_transition(reservation, ReservationStatus.CANCELLED)
    if reservation.check_in_at is not None:
        raise InvalidTransitionError(
            TransitionReason.ALREADY_CHECKED_IN,
            "A checked-in reservation cannot be cancelled",
        )
    if notice_hours is not None:
        cutoff = reservation.start - timedelta(hours=notice_hours)
        if now > cutoff:
            raise InvalidTransitionError(
                TransitionReason.CANCELLATION_CUTOFF,
                f"Cancellation closed {notice_hours:g} hours before start",
                available_at=cutoff,
            )
    return replace(
        reservation,
        status=ReservationStatus.CANCELLED,
        cancellation_reason=reason.strip() if reason else None,
        updated_at=now,
    )


def check_in(
    reservation: Reservation,
    policy: Policy,
    now: datetime,
    note: Optional[str] = None,
) -> Reservation:
    if reservation.status is not ReservationStatus.APPROVED:
        raise InvalidTransitionError(
            TransitionReason.WRONG_STATE,
            f"Only approved reservations can check in (status={reservation.status.value})",
        )
    if reservation.check_in_at is not None:
        raise InvalidTransitionError(
            TransitionReason.ALREADY_CHECKED_IN,
            "Reservation is already checked in",
        )

    opens_at, closes_at = check_in_window(reservation, policy)
    if now < opens_at:
        raise InvalidTransitionError(
            TransitionReason.TOO_EARLY,
            f"Check-in opens at {opens_at.isoformat()}",
            available_at=opens_at,
        )
    if now > closes_at:
        raise InvalidTransitionError(
            TransitionReason.TOO_LATE,
            f"Check-in closed at {closes_at.isoformat()}",
            available_at=closes_at,
        )
    return replace(
        reservation,
        check_in_at=now,
        check_in_note=_clean_note(note),
        updated_at=now,
    )


def check_out(
    reservation: Reservation,
    policy: Policy,
    now: datetime,
    note: Optional[str] = None,
) -> Reservation:
    """Record check-out and complete the reservation."""
    if reservation.check_in_at is None:
        raise InvalidTransitionError(
            TransitionReason.NOT_CHECKED_IN,
            "Reservation has not been checked in",
        )
    if reservation.check_out_at is not None:
        raise InvalidTransitionError(
            TransitionReason.ALREADY_CHECKED_OUT,
            "Reservation is already checked out",
        )
    if reservation.status not in (ReservationStatus.APPROVED, ReservationStatus.COMPLETED):
        raise InvalidTransitionError(
            TransitionReason.WRONG_STATE,
            f"Cannot check out a {reservation.status.value} reservation",
        )

    allowed_at = earliest_check_out(reservation.check_in_at, policy)
    if now < allowed_at:
        raise InvalidTransitionError(
            TransitionReason.DWELL_NOT_MET,
            f"Check-out allowed from {allowed_at.isoformat()}",
            available_at=allowed_at,
        )
    return replace(
        reservation,
        status=ReservationStatus.COMPLETED,
        check_out_at=now,
        check_out_note=_clean_note(note),
        updated_at=now,
    )
