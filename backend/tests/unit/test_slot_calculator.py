#!/usr/bin/env python3
"""
Unit tests for the slot calculator.

The clamp primitive is shared by initialization, manual reschedule and
post-run advancement, so most behaviour is pinned down here.
"""

import itertools
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from geogrid.services.scheduling.slot_calculator import (
    ScheduleSlot,
    clamp_within_window,
    fallback_slot,
    find_next_slot,
    next_occurrence_for_schedule,
    same_time_tomorrow,
    schedule_from_datetime,
    validate_slot_for_day,
)

PHOENIX = ZoneInfo("America/Phoenix")
NEW_YORK = ZoneInfo("America/New_York")


def _local(year, month, day, hour=0, minute=0, tz=PHOENIX):
    return datetime(year, month, day, hour, minute, tzinfo=tz)


@pytest.mark.unit
class TestClampWithinWindow:
    """The single clamping primitive."""

    START = datetime(2024, 1, 15, 9, tzinfo=timezone.utc)
    END = datetime(2024, 1, 15, 17, tzinfo=timezone.utc)

    def test_target_inside_range_is_unchanged(self):
        target = self.START + timedelta(hours=3)
        assert clamp_within_window(self.START, self.END, target, 120) == target

    def test_target_before_window_moves_to_start(self):
        target = self.START - timedelta(hours=2)
        assert clamp_within_window(self.START, self.END, target, 120) == self.START

    def test_target_after_latest_start_moves_back(self):
        target = self.END - timedelta(minutes=30)
        assert clamp_within_window(self.START, self.END, target, 120) == self.END - timedelta(
            minutes=120
        )

    def test_window_too_short_for_lead(self):
        end = self.START + timedelta(minutes=120)
        assert clamp_within_window(self.START, end, self.START, 120) is None

    def test_clamp_property_over_grid(self):
        """Result lies in [s, e-L] when e-s > L and is None otherwise."""
        base = datetime(2024, 1, 15, tzinfo=timezone.utc)
        offsets = [0, 60, 120, 180, 360, 600, 900]
        leads = [0, 30, 120, 240]

        for start_min, length, lead, target_min in itertools.product(
            offsets, [30, 120, 121, 480], leads, [-60, 0, 200, 700, 1500]
        ):
            start = base + timedelta(minutes=start_min)
            end = start + timedelta(minutes=length)
            target = base + timedelta(minutes=target_min)

            result = clamp_within_window(start, end, target, lead)

            if length > lead:
                assert result is not None
                assert start <= result <= end - timedelta(minutes=lead)
            else:
                assert result is None


@pytest.mark.unit
class TestFindNextSlot:
    """Initialization and advancement target selection."""

    def test_reference_before_target_picks_target_same_day(self, weekday_hours):
        reference = _local(2024, 1, 15, 14)
        assert find_next_slot(weekday_hours, PHOENIX, reference) == _local(2024, 1, 15, 15)

    def test_target_clamped_to_latest_start(self):
        hours = {"mon": "09:00-16:00"}
        reference = _local(2024, 1, 15, 8)
        assert find_next_slot(hours, PHOENIX, reference) == _local(2024, 1, 15, 14)

    def test_reference_after_latest_start_moves_to_next_open_day(self, weekday_hours):
        reference = _local(2024, 1, 15, 16)
        assert find_next_slot(weekday_hours, PHOENIX, reference) == _local(2024, 1, 16, 15)

    def test_friday_evening_skips_weekend(self, weekday_hours):
        reference = _local(2024, 1, 19, 18)
        assert find_next_slot(weekday_hours, PHOENIX, reference) == _local(2024, 1, 22, 15)

    def test_same_day_buffer_reclamps_after_reference(self):
        # Target 15:00 clamps to the 16:00 opening, which is inside the buffer
        hours = {"mon": "16:00-20:00"}
        reference = _local(2024, 1, 15, 15, 58)

        slot = find_next_slot(hours, PHOENIX, reference)

        assert slot == _local(2024, 1, 15, 16, 3)

    def test_no_window_fits_lead(self):
        hours = {day: "09:00-10:00" for day in ("mon", "tue", "wed", "thu", "fri")}
        assert find_next_slot(hours, PHOENIX, _local(2024, 1, 15, 8)) is None

    def test_closed_everywhere(self):
        assert find_next_slot({}, PHOENIX, _local(2024, 1, 15, 8)) is None

    def test_result_is_strictly_after_reference(self, every_day_hours):
        reference = _local(2024, 1, 15, 15)
        slot = find_next_slot(every_day_hours, PHOENIX, reference)
        assert slot > reference

    def test_dst_keeps_wall_clock_time(self, every_day_hours):
        # Spring forward in New York on 2024-03-10
        reference = datetime(2024, 3, 9, 16, tzinfo=NEW_YORK)
        slot = find_next_slot(every_day_hours, NEW_YORK, reference)

        local = slot.astimezone(NEW_YORK)
        assert (local.day, local.hour, local.minute) == (10, 15, 0)


@pytest.mark.unit
class TestValidateSlotForDay:
    """Manual reschedule validation."""

    def test_legal_time(self, weekday_hours):
        reference = _local(2024, 1, 15, 8)
        assert validate_slot_for_day(weekday_hours, PHOENIX, 1, 10, 0, reference=reference)

    def test_latest_legal_start_is_accepted(self, weekday_hours):
        reference = _local(2024, 1, 15, 8)
        assert validate_slot_for_day(weekday_hours, PHOENIX, 1, 15, 0, reference=reference)

    def test_too_close_to_close_is_rejected(self, weekday_hours):
        reference = _local(2024, 1, 15, 8)
        assert not validate_slot_for_day(
            weekday_hours, PHOENIX, 1, 15, 1, reference=reference
        )

    def test_before_opening_is_rejected(self, weekday_hours):
        reference = _local(2024, 1, 15, 8)
        assert not validate_slot_for_day(weekday_hours, PHOENIX, 1, 8, 0, reference=reference)

    def test_closed_day_is_rejected(self, weekday_hours):
        reference = _local(2024, 1, 15, 8)
        assert not validate_slot_for_day(weekday_hours, PHOENIX, 0, 12, 0, reference=reference)


@pytest.mark.unit
class TestNextOccurrence:
    """Weekly advancement of an existing schedule."""

    def test_later_this_week(self, weekday_hours):
        reference = _local(2024, 1, 15, 12)  # Monday
        result = next_occurrence_for_schedule(weekday_hours, PHOENIX, 3, 15, 0, reference)
        assert result == _local(2024, 1, 17, 15)

    def test_same_weekday_already_passed_rolls_a_week(self, weekday_hours):
        reference = _local(2024, 1, 15, 15)  # Monday at run time
        result = next_occurrence_for_schedule(weekday_hours, PHOENIX, 1, 15, 0, reference)
        assert result == _local(2024, 1, 22, 15)

    def test_occurrence_is_reclamped_to_hours(self):
        hours = {"wed": "09:00-16:00"}
        reference = _local(2024, 1, 15, 12)
        result = next_occurrence_for_schedule(hours, PHOENIX, 3, 15, 30, reference)
        assert result == _local(2024, 1, 17, 14)

    def test_closed_day_has_no_occurrence(self, weekday_hours):
        reference = _local(2024, 1, 15, 12)
        assert next_occurrence_for_schedule(weekday_hours, PHOENIX, 6, 15, 0, reference) is None


@pytest.mark.unit
class TestHelpers:
    """Conversions between instants and weekly slots."""

    def test_schedule_from_datetime_uses_sunday_zero(self):
        sunday = _local(2024, 1, 21, 10, 45)
        assert schedule_from_datetime(sunday, PHOENIX) == ScheduleSlot(0, 10, 45)

    def test_schedule_from_utc_instant(self):
        # 2024-01-15 22:30 UTC is 15:30 Monday in Phoenix (UTC-7)
        instant = datetime(2024, 1, 15, 22, 30, tzinfo=timezone.utc)
        assert schedule_from_datetime(instant, PHOENIX) == ScheduleSlot(1, 15, 30)

    def test_fallback_slot_is_tomorrow_at_target(self):
        assert fallback_slot(_local(2024, 1, 15, 20), PHOENIX) == _local(2024, 1, 16, 15)

    def test_same_time_tomorrow(self):
        assert same_time_tomorrow(_local(2024, 1, 15, 20), PHOENIX, 10, 5) == _local(
            2024, 1, 16, 10, 5
        )
