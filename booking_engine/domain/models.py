"""Domain models for slot availability and the reservation lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Optional


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def blocks_slots(self) -> bool:
        """Whether a reservation in this status occupies its interval."""
        return self not in NON_BLOCKING_STATUSES


TERMINAL_STATUSES = frozenset(
    {ReservationStatus.REJECTED, ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}
)
NON_BLOCKING_STATUSES = frozenset({ReservationStatus.REJECTED, ReservationStatus.CANCELLED})


@dataclass(frozen=True)
class OperatingHours:
    open_time: time
    close_time: time

    def opens_on(self, target_date: date) -> datetime:
        return datetime.combine(target_date, self.open_time)

    def closes_on(self, target_date: date) -> datetime:
        return datetime.combine(target_date, self.close_time)


@dataclass(frozen=True)
class Facility:
    facility_id: int
    name: str
    capacity: int
    operating_hours: OperatingHours


@dataclass(frozen=True)
class Policy:
    """Tunable temporal parameters, read once per evaluation."""

    minimum_lead_hours: float
    check_in_lead_minutes: int
    check_in_grace_minutes: int
    min_dwell_minutes_before_checkout: int

    def to_dict(self) -> dict[str, float | int]:
        return {
            "minimum_lead_hours": self.minimum_lead_hours,
            "check_in_lead_minutes": self.check_in_lead_minutes,
            "check_in_grace_minutes": self.check_in_grace_minutes,
            "min_dwell_minutes_before_checkout": self.min_dwell_minutes_before_checkout,
        }


@dataclass(frozen=True)
class TimeSlot:
    slot_id: str
    start: datetime
    end: datetime
    available: bool


@dataclass(frozen=True)
class BookingDetails:
    purpose: str
    attendees: int = 1
    notes: Optional[str] = None


@dataclass(frozen=True)
class Reservation:
    reservation_id: int
    facility_id: int
    requester_id: str
    start: datetime
    end: datetime
    status: ReservationStatus
    purpose: str = ""
    attendees: int = 1
    notes: Optional[str] = None
    check_in_at: Optional[datetime] = None
    check_out_at: Optional[datetime] = None
    check_in_note: Optional[str] = None
    check_out_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def booking_date(self) -> date:
        return self.start.date()

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        return start < self.end and end > self.start
