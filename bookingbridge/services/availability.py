"""
Application service resolving bookable slots across units.

The service coordinates fetching the time matrix and reserved intervals via
the SimplyBook adapter and delegates the filtering to the domain-level
``SlotCalculator``. Upstream data is fetched fresh on every call; nothing
here is cached.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar

from ..domain.exceptions import SimplyBookAPIError, UpstreamError
from ..domain.models import (
    AvailableSlot,
    IntervalKind,
    ReservedInterval,
    ResourceUnit,
    TimeSlot,
    minutes_to_time,
)
from ..domain.slot_calculator import SlotCalculator, count_intervals, merge_unit_slots

logger = logging.getLogger(__name__)

DEBUG_CHECK_TIMES = ("16:00", "17:00", "18:00")

T = TypeVar("T")


class SchedulingClientProtocol(Protocol):
    """Protocol describing the scheduling calls needed by the availability service."""

    def get_start_time_matrix(
        self,
        token: str,
        date_from: str,
        date_to: str,
        service_id: int,
        unit_id: int,
        count: int = 1,
    ) -> Dict[str, List[str]]:
        """Return theoretical start times per date."""

    def get_reserved_time_intervals(
        self,
        user_token: str,
        date_from: str,
        date_to: str,
        service_id: int,
        unit_id: int,
        count: int = 1,
    ) -> Dict[str, List[ReservedInterval]]:
        """Return blocked intervals per date."""


class TokenProviderProtocol(Protocol):
    """Protocol describing token acquisition."""

    def get_public_token(self, force_refresh: bool = False) -> str:
        """Return a public API token."""

    def get_admin_token(self, force_refresh: bool = False) -> str:
        """Return an admin API token."""


def with_token_refresh(get_token: Callable[..., str], operation: Callable[[str], T]) -> T:
    """
    Run ``operation`` with a token, retrying once with a re-issued token
    when SimplyBook rejects the call.
    """
    try:
        return operation(get_token())
    except SimplyBookAPIError as exc:
        logger.warning("Upstream rejected the call (%s); retrying with a fresh token", exc)
        return operation(get_token(force_refresh=True))


class AvailabilityService:
    """
    Orchestrates upstream retrieval and slot filtering for the allowed units.
    """

    def __init__(
        self,
        client: SchedulingClientProtocol,
        authenticator: TokenProviderProtocol,
        slot_calculator: SlotCalculator,
        units: Sequence[ResourceUnit],
    ) -> None:
        self._client = client
        self._authenticator = authenticator
        self._slot_calculator = slot_calculator
        self._units = list(units)

    @property
    def units(self) -> List[ResourceUnit]:
        return list(self._units)

    @property
    def slot_calculator(self) -> SlotCalculator:
        return self._slot_calculator

    def find_available_slots(
        self,
        *,
        start_date: str,
        end_date: str,
        service_id: int,
    ) -> List[AvailableSlot]:
        """
        Resolve bookable slots for every allowed unit, merged and sorted.

        A unit whose upstream calls fail is skipped; token failures are fatal.
        The first API error of a request also re-issues both tokens and
        retries that unit once, so a revoked cached token cannot turn into
        an empty result.

        Raises:
            AuthenticationError: If a token cannot be obtained
        """
        public_token = self._authenticator.get_public_token()
        admin_token = self._authenticator.get_admin_token()
        tokens_refreshed = False

        per_unit: List[List[AvailableSlot]] = []
        for unit in self._units:
            logger.info("Checking availability for %s (unit %s)", unit.name, unit.unit_id)
            query = dict(unit=unit, start_date=start_date, end_date=end_date, service_id=service_id)
            try:
                try:
                    slots = self.find_unit_slots(
                        public_token=public_token, admin_token=admin_token, **query
                    )
                except SimplyBookAPIError as exc:
                    if tokens_refreshed:
                        raise
                    logger.warning("%s rejected (%s); retrying with fresh tokens", unit.name, exc)
                    public_token = self._authenticator.get_public_token(force_refresh=True)
                    admin_token = self._authenticator.get_admin_token(force_refresh=True)
                    tokens_refreshed = True
                    slots = self.find_unit_slots(
                        public_token=public_token, admin_token=admin_token, **query
                    )
            except UpstreamError as exc:
                logger.error("Skipping %s (unit %s): %s", unit.name, unit.unit_id, exc)
                continue

            logger.info("Found %d available slots for %s", len(slots), unit.name)
            per_unit.append(slots)

        merged = merge_unit_slots(per_unit)
        logger.info("Final available slots: %d total", len(merged))
        return merged

    def find_unit_slots(
        self,
        *,
        public_token: str,
        admin_token: str,
        unit: ResourceUnit,
        start_date: str,
        end_date: str,
        service_id: int,
    ) -> List[AvailableSlot]:
        """Fetch and filter slots for one unit."""
        time_matrix = self._client.get_start_time_matrix(
            public_token, start_date, end_date, service_id, unit.unit_id
        )
        reserved = self._client.get_reserved_time_intervals(
            admin_token, start_date, end_date, service_id, unit.unit_id
        )

        counts = count_intervals(reserved)
        logger.info(
            "%s: %d reserved, %d not-worked intervals",
            unit.name,
            counts[IntervalKind.RESERVED],
            counts[IntervalKind.NOT_WORKED],
        )

        return self._slot_calculator.filter_available_slots(time_matrix, reserved, unit)

    def fetch_day_reserved(
        self,
        admin_token: str,
        date: str,
        service_id: int,
        unit_id: int,
    ) -> List[ReservedInterval]:
        """Fetch the blocked intervals of one unit on one date."""
        reserved = self._client.get_reserved_time_intervals(
            admin_token, date, date, service_id, unit_id
        )
        return reserved.get(date, [])

    def find_slot_conflict(
        self,
        admin_token: str,
        slot: TimeSlot,
        service_id: int,
        unit_id: int,
    ) -> Optional[ReservedInterval]:
        """
        Re-check a single slot against freshly fetched intervals.

        Returns the conflicting interval, or None when the slot is free.
        """
        day_reserved = self.fetch_day_reserved(admin_token, slot.date, service_id, unit_id)
        return self._slot_calculator.find_conflict(slot, day_reserved)

    def debug_availability(
        self,
        *,
        date: str,
        unit_id: int,
        service_id: int,
        check_times: Sequence[str] = DEBUG_CHECK_TIMES,
    ) -> Dict[str, Any]:
        """Report the reserved intervals of a day and whether the check times are free."""
        day_reserved = with_token_refresh(
            self._authenticator.get_admin_token,
            lambda token: self.fetch_day_reserved(token, date, service_id, unit_id),
        )

        slot_results: Dict[str, Dict[str, Any]] = {}
        for clock in check_times:
            slot = TimeSlot(
                date=date,
                time=clock,
                duration_minutes=self._slot_calculator.service_duration,
            )
            slot_results[clock] = {
                "is_free": self._slot_calculator.is_slot_free(slot, day_reserved),
                "slot_minutes": slot.start_minutes,
                "slot_end_minutes": slot.end_minutes,
            }

        working_hours = self._slot_calculator.working_hours
        return {
            "date": date,
            "unit_id": unit_id,
            "service_id": service_id,
            "service_duration": self._slot_calculator.service_duration,
            "day_reserved": [
                {
                    "from": minutes_to_time(interval.start),
                    "to": minutes_to_time(interval.end),
                    "kind": interval.kind.value,
                }
                for interval in day_reserved
            ],
            "slot_results": slot_results,
            "working_hours": {
                "days": list(working_hours.days),
                "start": working_hours.start_time.strftime("%H:%M"),
                "end": working_hours.end_time.strftime("%H:%M"),
            },
        }
