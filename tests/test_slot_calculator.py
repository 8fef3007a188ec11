"""
Tests for slot calculator.
"""

from datetime import time

from bookingbridge.domain.models import (
    AvailableSlot,
    IntervalKind,
    ReservedInterval,
    ResourceUnit,
    TimeSlot,
    WorkingHours,
)
from bookingbridge.domain.slot_calculator import SlotCalculator, count_intervals, merge_unit_slots

MASON = ResourceUnit(unit_id=4, name="Mason")
JOSH = ResourceUnit(unit_id=10, name="Josh")

MONDAY = "2024-11-25"
SATURDAY = "2024-11-30"


def _calculator(require_end_within=True):
    working_hours = WorkingHours(
        days=["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
        start_time=time(16, 0),
        end_time=time(18, 0),
        require_end_within=require_end_within,
    )
    return SlotCalculator(working_hours=working_hours, service_duration=55)


class TestSlotCalculator:
    """Tests for SlotCalculator."""

    def test_no_reservations_keeps_window_slots(self):
        """Slots inside the window survive; slots outside are dropped."""
        calculator = _calculator()

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["15:30", "16:00", "17:00", "18:00"]},
            reserved_intervals={},
            unit=MASON,
        )

        assert [s.slot.time for s in slots] == ["16:00", "17:00"]
        assert all(s.unit == MASON for s in slots)

    def test_reserved_interval_blocks_overlapping_slot(self):
        """A reservation 16:00-16:55 blocks 16:00 but not the adjacent 16:55."""
        calculator = _calculator()
        reserved = {MONDAY: [ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED)]}

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["15:30", "16:00", "16:55"]},
            reserved_intervals=reserved,
            unit=MASON,
        )

        assert [s.slot.time for s in slots] == ["16:55"]

    def test_not_worked_interval_blocks_slot(self):
        calculator = _calculator()
        reserved = {MONDAY: [ReservedInterval.from_clock("16:30", "18:00", IntervalKind.NOT_WORKED)]}

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["16:00", "17:00"]},
            reserved_intervals=reserved,
            unit=MASON,
        )

        assert slots == []

    def test_non_working_day_yields_nothing(self):
        """Weekend dates return zero slots whatever the matrix says."""
        calculator = _calculator()

        slots = calculator.filter_available_slots(
            time_matrix={SATURDAY: ["16:00", "17:00"]},
            reserved_intervals={},
            unit=MASON,
        )

        assert slots == []

    def test_reservations_on_other_dates_are_ignored(self):
        calculator = _calculator()
        reserved = {"2024-11-26": [ReservedInterval.from_clock("16:00", "18:00", IntervalKind.RESERVED)]}

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["16:00"]},
            reserved_intervals=reserved,
            unit=MASON,
        )

        assert len(slots) == 1

    def test_seconds_in_matrix_are_truncated(self):
        calculator = _calculator()

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["16:00:00"]},
            reserved_intervals={},
            unit=JOSH,
        )

        assert slots[0].slot.start_time == "2024-11-25 16:00"

    def test_start_only_policy_keeps_late_slot(self):
        calculator = _calculator(require_end_within=False)

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["17:30"]},
            reserved_intervals={},
            unit=MASON,
        )

        assert [s.slot.time for s in slots] == ["17:30"]

    def test_is_slot_free(self):
        calculator = _calculator()
        slot = calculator.build_slot("2024-11-25 16:55")
        day_reserved = [ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED)]

        assert calculator.is_slot_free(slot, day_reserved)
        assert not calculator.is_slot_free(calculator.build_slot("2024-11-25 16:30"), day_reserved)

    def test_slot_ending_where_reservation_starts_is_kept(self):
        calculator = _calculator()

        slots = calculator.filter_available_slots(
            time_matrix={MONDAY: ["16:00"]},
            reserved_intervals={
                MONDAY: [ReservedInterval.from_clock("16:55", "17:50", IntervalKind.RESERVED)]
            },
            unit=MASON,
        )

        assert [s.slot.time for s in slots] == ["16:00"]

    def test_slot_running_into_reservation_is_not_free(self):
        calculator = _calculator()
        day_reserved = [ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED)]

        assert not calculator.is_slot_free(calculator.build_slot("2024-11-25 15:30"), day_reserved)


class TestMergeUnitSlots:
    """Tests for merging slots of several units."""

    def test_merge_orders_by_date_then_time_with_stable_ties(self):
        def available(date, clock, unit):
            return AvailableSlot(slot=TimeSlot(date=date, time=clock, duration_minutes=55), unit=unit)

        mason = [available("2024-11-26", "16:00", MASON), available(MONDAY, "17:00", MASON)]
        josh = [available(MONDAY, "17:00", JOSH), available(MONDAY, "16:00", JOSH)]

        merged = merge_unit_slots([mason, josh])

        assert [(s.slot.start_time, s.unit.name) for s in merged] == [
            ("2024-11-25 16:00", "Josh"),
            ("2024-11-25 17:00", "Mason"),
            ("2024-11-25 17:00", "Josh"),
            ("2024-11-26 16:00", "Mason"),
        ]

    def test_merge_of_nothing(self):
        assert merge_unit_slots([[], []]) == []


def test_count_intervals():
    reserved = {
        MONDAY: [
            ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED),
            ReservedInterval.from_clock("00:00", "09:00", IntervalKind.NOT_WORKED),
        ],
        "2024-11-26": [ReservedInterval.from_clock("17:00", "17:55", IntervalKind.RESERVED)],
    }

    counts = count_intervals(reserved)

    assert counts[IntervalKind.RESERVED] == 2
    assert counts[IntervalKind.NOT_WORKED] == 1
