"""
Core business logic for filtering bookable time slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    AvailableSlot,
    IntervalKind,
    ReservedInterval,
    ResourceUnit,
    TimeSlot,
    WorkingHours,
)

logger = logging.getLogger(__name__)


class SlotCalculator:
    """
    Filters the upstream time matrix down to slots that can really be booked.

    Algorithm, per date:
    1. Skip the date if its weekday is not a working day
    2. Drop slots outside the working-hours window
    3. Drop slots overlapping any reserved or not-worked interval
    4. Tag survivors with the owning unit
    """

    def __init__(self, working_hours: WorkingHours, service_duration: int = 55):
        self.working_hours = working_hours
        self.service_duration = service_duration

    def filter_available_slots(
        self,
        time_matrix: Dict[str, List[str]],
        reserved_intervals: Dict[str, List[ReservedInterval]],
        unit: ResourceUnit,
    ) -> List[AvailableSlot]:
        """
        Filter theoretical start times for one unit.

        Args:
            time_matrix: Date -> theoretical start times (``HH:MM``)
            reserved_intervals: Date -> blocked intervals; missing dates are unconstrained
            unit: Unit the time matrix belongs to

        Returns:
            Available slots in time-matrix order
        """
        available: List[AvailableSlot] = []

        for date, times in time_matrix.items():
            if not self.working_hours.is_working_day(date):
                logger.debug("%s is not a working day, skipping", date)
                continue

            day_reserved = reserved_intervals.get(date, [])

            for clock in times or []:
                slot = TimeSlot(date=date, time=clock[:5], duration_minutes=self.service_duration)

                if not self.working_hours.contains(slot):
                    logger.debug("Slot %s is outside working hours", slot.start_time)
                    continue

                conflict = self.find_conflict(slot, day_reserved)
                if conflict is not None:
                    logger.debug("Slot %s conflicts with %s", slot.start_time, conflict)
                    continue

                available.append(AvailableSlot(slot=slot, unit=unit))

        return available

    def build_slot(self, start_time: str) -> TimeSlot:
        """Build a slot of the configured service duration."""
        return TimeSlot.from_start_time(start_time, self.service_duration)

    def is_slot_free(self, slot: TimeSlot, day_reserved: Iterable[ReservedInterval]) -> bool:
        """Return False iff the slot overlaps any interval of its date."""
        return self.find_conflict(slot, day_reserved) is None

    @staticmethod
    def find_conflict(
        slot: TimeSlot,
        day_reserved: Iterable[ReservedInterval],
    ) -> Optional[ReservedInterval]:
        """Return the first interval overlapping the slot, if any."""
        for interval in day_reserved:
            if slot.conflicts_with(interval):
                return interval
        return None


def merge_unit_slots(per_unit: Sequence[List[AvailableSlot]]) -> List[AvailableSlot]:
    """
    Merge slots from several units ordered by (date, time).

    The sort is stable, so slots sharing a date and time keep unit order.
    """
    merged: List[AvailableSlot] = []
    for slots in per_unit:
        merged.extend(slots)
    return sorted(merged, key=lambda available: available.slot.sort_key())


def count_intervals(reserved_intervals: Dict[str, List[ReservedInterval]]) -> Dict[IntervalKind, int]:
    """Count reserved and not-worked intervals across all dates."""
    counts = {kind: 0 for kind in IntervalKind}
    for intervals in reserved_intervals.values():
        for interval in intervals:
            counts[interval.kind] += 1
    return counts
