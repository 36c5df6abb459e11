"""Slot grid generation and reservation conflict filtering.

Both stages are pure functions over caller-supplied values: the same
``(hours, date, now, lead)`` always yields the same grid, and conflict
filtering only ever narrows availability.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from booking_engine.domain.constraints import validate_operating_hours
from booking_engine.domain.errors import PolicyUnavailableError
from booking_engine.domain.models import OperatingHours, Reservation, TimeSlot


DEFAULT_SLOT_DURATION = timedelta(hours=1)


def _slot_id(slot_start: datetime) -> str:
    return f"slot-{slot_start:%H%M}"


def is_past_slot(slot_start: datetime, target_date: date, now: datetime) -> bool:
    if target_date < now.date():
        return True
    return target_date == now.date() and slot_start <= now


def is_within_lead_window(
    slot_start: datetime,
    now: datetime,
    minimum_lead_hours: float,
) -> bool:
    """True for future starts closer to ``now`` than the lead threshold."""
    if slot_start <= now:
        return False
    lead_hours = (slot_start - now).total_seconds() / 3600.0
    return lead_hours < minimum_lead_hours


def generate_slots(
    operating_hours: OperatingHours,
    target_date: date,
    now: datetime,
    minimum_lead_hours: Optional[float],
    slot_duration: timedelta = DEFAULT_SLOT_DURATION,
) -> list[TimeSlot]:
    """Build the ordered slot grid for one facility day.

    Availability here reflects elapsed time and lead time only; reservations
    are applied afterwards by :func:`apply_conflicts`.
    """
    if minimum_lead_hours is None:
        raise PolicyUnavailableError(
            "minimum lead hours unknown; availability cannot be computed"
        )
    validate_operating_hours(operating_hours, slot_duration)

    slots: list[TimeSlot] = []
    slot_start = operating_hours.opens_on(target_date)
    closes_at = operating_hours.closes_on(target_date)
    while slot_start < closes_at:
        slot_end = slot_start + slot_duration
        available = not (
            is_past_slot(slot_start, target_date, now)
            or is_within_lead_window(slot_start, now, minimum_lead_hours)
        )
        slots.append(
            TimeSlot(
                slot_id=_slot_id(slot_start),
                start=slot_start,
                end=slot_end,
                available=available,
            )
        )
        slot_start = slot_end
    return slots


def blocking_reservations(
    reservations: Iterable[Reservation],
    target_date: date,
) -> list[Reservation]:
    """Keep reservations that still occupy time on ``target_date``."""
    return [
        reservation
        for reservation in reservations
        if reservation.status.blocks_slots and reservation.booking_date == target_date
    ]


def apply_conflicts(
    slots: Sequence[TimeSlot],
    reservations: Iterable[Reservation],
    target_date: date,
) -> list[TimeSlot]:
    blockers = blocking_reservations(reservations, target_date)
    narrowed: list[TimeSlot] = []
    for slot in slots:
        if slot.available and any(
            reservation.overlaps(slot.start, slot.end) for reservation in blockers
        ):
            slot = replace(slot, available=False)
        narrowed.append(slot)
    return narrowed


def slots_spanning(
    slots: Sequence[TimeSlot],
    start: datetime,
    end: datetime,
) -> list[TimeSlot]:
    return [slot for slot in slots if slot.start < end and slot.end > start]
