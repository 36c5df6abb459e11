"""Slot availability for one facility and date."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from booking_engine.domain.errors import FacilityNotFoundError
from booking_engine.domain.models import Facility, Policy, TimeSlot
from booking_engine.domain.slots import apply_conflicts, generate_slots
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.policy_service import PolicyService
from booking_engine.utils.clock import Clock, facility_clock
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class AvailabilityService:
    """Runs slot generation followed by conflict filtering."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        policy_service: Optional[PolicyService] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._policy_service = policy_service or PolicyService(
            repository=self._repository,
            settings=self._settings,
        )
        self._clock = clock or facility_clock(self._settings)
        self._slot_duration = timedelta(minutes=self._settings.slot_duration_minutes)

    def now(self) -> datetime:
        return self._clock()

    def get_facility(self, facility_id: int) -> Facility:
        facility = self._repository.get_facility(facility_id)
        if facility is None:
            raise FacilityNotFoundError(f"Facility {facility_id} not found")
        return facility

    def compute_availability(
        self,
        facility_id: int,
        target_date: date,
        now: Optional[datetime] = None,
    ) -> list[TimeSlot]:
        current = now or self.now()
        facility = self.get_facility(facility_id)
        policy = self._policy_service.get_policy()
        return self.evaluate_slots(facility, target_date, current, policy)

    def evaluate_slots(
        self,
        facility: Facility,
        target_date: date,
        now: datetime,
        policy: Policy,
    ) -> list[TimeSlot]:
        """Evaluate the grid against one policy snapshot and one instant."""
        slots = generate_slots(
            facility.operating_hours,
            target_date,
            now,
            policy.minimum_lead_hours,
            slot_duration=self._slot_duration,
        )
        reservations = self._repository.list_reservations_for_facility_and_date(
            facility.facility_id,
            target_date,
        )
        result = apply_conflicts(slots, reservations, target_date)
        logger.debug(
            "Availability facility=%s date=%s open=%s/%s",
            facility.facility_id,
            target_date.isoformat(),
            sum(1 for slot in result if slot.available),
            len(result),
        )
        return result
