"""
Domain models for slots, reserved intervals and working hours.
"""

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Any, Dict, List

import pendulum

WEEKDAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]


def time_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` or ``HH:MM:SS`` into minutes after midnight."""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid clock time: {value!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValueError(f"Invalid clock time: {value!r}") from exc
    return hours * 60 + minutes


def minutes_to_time(minutes: int, with_seconds: bool = False) -> str:
    """Format minutes after midnight as ``HH:MM`` (or ``HH:MM:SS``)."""
    formatted = f"{minutes // 60:02d}:{minutes % 60:02d}"
    return f"{formatted}:00" if with_seconds else formatted


def weekday_name(date: str) -> str:
    """English weekday name for an ISO date string."""
    return WEEKDAY_NAMES[pendulum.parse(date).weekday()]


class IntervalKind(str, Enum):
    RESERVED = "reserved"
    NOT_WORKED = "not_worked"


@dataclass(frozen=True)
class ReservedInterval:
    """
    A blocked clock-time range within one date.

    ``start`` and ``end`` are minutes after midnight.
    """
    start: int
    end: int
    kind: IntervalKind = IntervalKind.RESERVED

    @classmethod
    def from_clock(cls, start: str, end: str, kind: IntervalKind) -> "ReservedInterval":
        return cls(start=time_to_minutes(start), end=time_to_minutes(end), kind=kind)

    def overlaps(self, start: int, end: int) -> bool:
        """Strict overlap test against the half-open range ``[start, end)``."""
        return start < self.end and self.start < end

    def __str__(self) -> str:
        return f"{minutes_to_time(self.start)}-{minutes_to_time(self.end)} ({self.kind.value})"


@dataclass(frozen=True)
class TimeSlot:
    """
    A candidate start time of fixed duration on one date.

    Invariant: ``date`` is ``YYYY-MM-DD`` and ``time`` is zero-padded ``HH:MM``,
    so string ordering equals chronological ordering.
    """
    date: str
    time: str
    duration_minutes: int

    @classmethod
    def from_start_time(cls, start_time: str, duration_minutes: int) -> "TimeSlot":
        """Build a slot from ``"YYYY-MM-DD HH:MM[:SS]"``."""
        try:
            date, clock = start_time.strip().split(" ", 1)
        except ValueError as exc:
            raise ValueError(f"Invalid start_time: {start_time!r}") from exc
        return cls(
            date=date,
            time=minutes_to_time(time_to_minutes(clock)),
            duration_minutes=duration_minutes,
        )

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def start_time(self) -> str:
        return f"{self.date} {self.time}"

    @property
    def end_date(self) -> str:
        """Date the slot ends on; rolls over when the slot crosses midnight."""
        days, _ = divmod(self.end_minutes, 24 * 60)
        return pendulum.parse(self.date).add(days=days).to_date_string()

    @property
    def end_time_of_day(self) -> str:
        return minutes_to_time(self.end_minutes % (24 * 60), with_seconds=True)

    def conflicts_with(self, interval: ReservedInterval) -> bool:
        return interval.overlaps(self.start_minutes, self.end_minutes)

    def sort_key(self) -> tuple:
        return (self.date, self.time)


@dataclass
class WorkingHours:
    """
    Configuration for working hours.
    """
    days: List[str]
    start_time: time
    end_time: time
    require_end_within: bool = True

    def is_working_day(self, date: str) -> bool:
        """Check if an ISO date falls on a configured working day."""
        return weekday_name(date) in self.days

    def contains(self, slot: TimeSlot) -> bool:
        """
        Check if a slot lies inside the daily window.

        The slot must start at or after the window start. With
        ``require_end_within`` it must also end at or before the window end,
        otherwise only its start has to be before the window end.
        """
        window_start = self.start_time.hour * 60 + self.start_time.minute
        window_end = self.end_time.hour * 60 + self.end_time.minute
        if slot.start_minutes < window_start:
            return False
        if self.require_end_within:
            return slot.end_minutes <= window_end
        return slot.start_minutes < window_end


@dataclass(frozen=True)
class ResourceUnit:
    """A bookable performer."""
    unit_id: int
    name: str


@dataclass(frozen=True)
class AvailableSlot:
    """
    A free slot tagged with the unit that can serve it.
    """
    slot: TimeSlot
    unit: ResourceUnit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.slot.start_time,
            "available": True,
            "unit_id": self.unit.unit_id,
            "coach_name": self.unit.name,
        }


@dataclass
class BookingRequest:
    """Client details and the slot a caller wants to book."""
    start_time: str
    service_id: int
    unit_id: int
    client_name: str
    client_email: str
    client_phone: str
    client_notes: str = ""

    def client_payload(self) -> Dict[str, str]:
        payload = {
            "name": self.client_name,
            "email": self.client_email,
            "phone": self.client_phone,
        }
        notes = (self.client_notes or "").strip()
        if notes:
            payload["notes"] = notes
        return payload


@dataclass
class BookingResult:
    """Outcome of a successful booking."""
    booking_id: Any
    unit: ResourceUnit
    start_time: str
    attempts: int = 1
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return f"Booking confirmed with {self.unit.name} for {self.start_time}!"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "booking_id": self.booking_id,
            "message": self.message,
            "coach_name": self.unit.name,
            "unit_id": self.unit.unit_id,
        }
