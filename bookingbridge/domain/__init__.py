"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    AvailableSlot,
    BookingRequest,
    BookingResult,
    IntervalKind,
    ReservedInterval,
    ResourceUnit,
    TimeSlot,
    WorkingHours,
)
from .slot_calculator import SlotCalculator, merge_unit_slots

__all__ = [
    "AvailableSlot",
    "BookingRequest",
    "BookingResult",
    "IntervalKind",
    "ReservedInterval",
    "ResourceUnit",
    "TimeSlot",
    "WorkingHours",
    "SlotCalculator",
    "merge_unit_slots",
]
