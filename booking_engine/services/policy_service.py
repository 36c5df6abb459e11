"""Policy store access for booking lead time and check-in/out windows."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from typing import Optional

from booking_engine.domain.constraints import validate_policy
from booking_engine.domain.errors import BookingEngineError, PolicyUnavailableError
from booking_engine.domain.models import Policy
from booking_engine.repository.data_repository import DataRepository
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class PolicyValidationError(BookingEngineError):
    """Raised when a policy update carries out-of-range values."""


class PolicyService:
    """Fetches the global policy fresh for every evaluation."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def get_policy(self) -> Policy:
        try:
            policy = self._repository.get_policy()
        except sqlite3.Error as exc:
            logger.exception("Policy store read failed")
            raise PolicyUnavailableError(f"Policy store unavailable: {exc}") from exc
        if policy is None:
            raise PolicyUnavailableError("No booking policy has been configured")
        return policy

    def update_policy(
        self,
        *,
        minimum_lead_hours: float | None = None,
        check_in_lead_minutes: int | None = None,
        check_in_grace_minutes: int | None = None,
        min_dwell_minutes_before_checkout: int | None = None,
    ) -> Policy:
        """Apply a partial update; omitted fields keep their stored values."""
        current = self.get_policy()
        changes: dict[str, float | int] = {}
        if minimum_lead_hours is not None:
            changes["minimum_lead_hours"] = minimum_lead_hours
        if check_in_lead_minutes is not None:
            changes["check_in_lead_minutes"] = check_in_lead_minutes
        if check_in_grace_minutes is not None:
            changes["check_in_grace_minutes"] = check_in_grace_minutes
        if min_dwell_minutes_before_checkout is not None:
            changes["min_dwell_minutes_before_checkout"] = min_dwell_minutes_before_checkout
        updated = replace(current, **changes)
        try:
            validate_policy(updated)
        except ValueError as exc:
            raise PolicyValidationError(str(exc)) from exc

        self._repository.save_policy(updated)
        logger.info("Booking policy updated: %s", updated.to_dict())
        return updated
