"""Typed failures raised by the booking engine.

Every error here is an expected, caller-recoverable condition. Reasons are
enums so a caller can pick the right message (or countdown) without parsing
exception text.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional


class BookingEngineError(Exception):
    """Base class for booking engine failures."""


class PolicyUnavailableError(BookingEngineError):
    """Raised when lead-time or check-in/out windows cannot be obtained."""

    retryable = False


class FacilityNotFoundError(BookingEngineError):
    """Raised when a facility id does not exist in the catalog."""


class ReservationNotFoundError(BookingEngineError):
    """Raised when a reservation id does not exist."""


class ValidationReason(str, Enum):
    INVALID_INTERVAL = "INVALID_INTERVAL"
    OUTSIDE_OPERATING_HOURS = "OUTSIDE_OPERATING_HOURS"
    PAST_START = "PAST_START"
    LEAD_TIME_TOO_SHORT = "LEAD_TIME_TOO_SHORT"
    ADVANCE_WINDOW_EXCEEDED = "ADVANCE_WINDOW_EXCEEDED"
    INVALID_ATTENDEES = "INVALID_ATTENDEES"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    SLOT_TAKEN = "SLOT_TAKEN"


class BookingValidationError(BookingEngineError):
    """Raised when a booking request fails availability checks at submission."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class TransitionReason(str, Enum):
    WRONG_STATE = "WRONG_STATE"
    TOO_EARLY = "TOO_EARLY"
    TOO_LATE = "TOO_LATE"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"
    DWELL_NOT_MET = "DWELL_NOT_MET"
    CANCELLATION_CUTOFF = "CANCELLATION_CUTOFF"
    REASON_REQUIRED = "REASON_REQUIRED"


class InvalidTransitionError(BookingEngineError):
    """Raised when a lifecycle action is not permitted right now.

    ``available_at`` is the instant the action becomes possible (too early,
    dwell not met) or stopped being possible (too late, cancellation cutoff).
    """

    def __init__(
        self,
        reason: TransitionReason,
        message: str,
        available_at: Optional[datetime] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.available_at = available_at
