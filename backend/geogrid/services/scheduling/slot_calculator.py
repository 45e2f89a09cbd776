# backend/geogrid/services/scheduling/slot_calculator.py

"""
Slot Calculator - picks legal run instants inside business hours.

A run may start no later than ``lead`` minutes before its window closes.
Initialization, manual reschedule and post-run advancement all go through
clamp_within_window so that "is this time legal" and "pick a time" can never
disagree.

Days of week use 0=Sunday .. 6=Saturday throughout, matching the stored
``run_day_of_week`` column.
"""

from datetime import datetime, timedelta
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from ...constants import (
    DAYS_PER_WEEK,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_SEARCH_DAYS,
    DEFAULT_TARGET_HOUR,
    DEFAULT_TARGET_MINUTE,
    MIN_LEAD_MINUTES,
)
from ...utils.time_utils import (
    at_local_minutes,
    ensure_utc,
    js_day_of_week,
    start_of_local_day,
)
from .business_hours_service import windows_for_day


class ScheduleSlot(NamedTuple):
    """Weekday and wall-clock time of a recurring schedule."""

    day_of_week: int
    hour: int
    minute: int


def clamp_within_window(
    start: datetime, end: datetime, target: datetime, lead_minutes: int
) -> Optional[datetime]:
    """
    Clamp ``target`` into ``[start, end - lead]``.

    Returns:
        The clamped instant, or None when the window is too short for the lead
    """
    latest_start = end - timedelta(minutes=lead_minutes)
    if latest_start <= start:
        return None
    if target < start:
        return start
    if target > latest_start:
        return latest_start
    return target


def _at_time(day_start: datetime, hour: int, minute: int) -> datetime:
    return at_local_minutes(day_start, hour * 60 + minute)


def find_next_slot(
    hours_config,
    tz: ZoneInfo,
    reference: datetime,
    min_lead_minutes: int = MIN_LEAD_MINUTES,
    target_hour: int = DEFAULT_TARGET_HOUR,
    target_minute: int = DEFAULT_TARGET_MINUTE,
    search_days: int = DEFAULT_SEARCH_DAYS,
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
) -> Optional[datetime]:
    """
    Find the next legal run instant at or near the target time of day.

    Scans day 0 through ``search_days`` inclusive. On day 0 a candidate that
    is not at least ``buffer_minutes`` after the reference is re-clamped
    against ``reference + buffer``.

    Returns:
        The first candidate strictly after the reference, in the business
        timezone, or None if no window in the horizon fits the lead time
    """
    reference = ensure_utc(reference)
    first_day = start_of_local_day(reference, tz)
    earliest = reference + timedelta(minutes=buffer_minutes)

    for offset in range(search_days + 1):
        day_start = first_day + timedelta(days=offset)
        target = _at_time(day_start, target_hour, target_minute)

        for window in windows_for_day(hours_config, tz, day_start):
            candidate = clamp_within_window(
                window.start, window.end, target, min_lead_minutes
            )
            if candidate is None:
                continue

            if offset == 0 and candidate <= earliest:
                candidate = clamp_within_window(
                    window.start,
                    window.end,
                    earliest.astimezone(tz),
                    min_lead_minutes,
                )
                if candidate is None:
                    continue

            if candidate > reference:
                return candidate

    return None


def _day_in_reference_week(reference: datetime, tz: ZoneInfo, day_of_week: int) -> datetime:
    """Midnight of ``day_of_week`` within the reference's Monday-based week."""
    day_start = start_of_local_day(reference, tz)
    monday_index = (day_of_week - 1) % DAYS_PER_WEEK
    return day_start + timedelta(days=monday_index - day_start.weekday())


def validate_slot_for_day(
    hours_config,
    tz: ZoneInfo,
    day_of_week: int,
    hour: int,
    minute: int,
    min_lead_minutes: int = MIN_LEAD_MINUTES,
    reference: Optional[datetime] = None,
) -> bool:
    """
    Whether ``hour:minute`` on ``day_of_week`` is a legal run time as-is.

    The requested time is legal only if clamping it into some window of that
    weekday leaves it unchanged. The weekday is sampled from the reference's
    week so the hours in force this week apply.
    """
    reference = ensure_utc(reference or datetime.now(tz))
    sample_day = _day_in_reference_week(reference, tz, day_of_week)
    target = _at_time(sample_day, hour, minute)

    for window in windows_for_day(hours_config, tz, sample_day):
        candidate = clamp_within_window(
            window.start, window.end, target, min_lead_minutes
        )
        if candidate is not None and candidate == target:
            return True
    return False


def next_occurrence_for_schedule(
    hours_config,
    tz: ZoneInfo,
    day_of_week: int,
    hour: int,
    minute: int,
    reference: datetime,
    min_lead_minutes: int = MIN_LEAD_MINUTES,
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
) -> Optional[datetime]:
    """
    Next calendar occurrence of a weekly weekday/time, re-clamped to that day's hours.

    An occurrence not at least ``buffer_minutes`` after the reference rolls
    forward one week.

    Returns:
        The first clamped instant strictly after the reference, or None when
        that day has no window long enough for the lead time
    """
    reference = ensure_utc(reference)
    local_reference = reference.astimezone(tz)
    delta = (day_of_week - js_day_of_week(local_reference)) % DAYS_PER_WEEK
    first_day = start_of_local_day(reference, tz)

    day_start = first_day + timedelta(days=delta)
    candidate = _at_time(day_start, hour, minute)
    if candidate <= reference + timedelta(minutes=buffer_minutes):
        day_start = first_day + timedelta(days=delta + DAYS_PER_WEEK)
        candidate = _at_time(day_start, hour, minute)

    for window in windows_for_day(hours_config, tz, day_start):
        clamped = clamp_within_window(
            window.start, window.end, candidate, min_lead_minutes
        )
        if clamped is not None and clamped > reference:
            return clamped
    return None


def schedule_from_datetime(instant: datetime, tz: ZoneInfo) -> ScheduleSlot:
    """Weekday (0=Sunday) and wall-clock time of an instant in the business timezone."""
    local = ensure_utc(instant).astimezone(tz)
    return ScheduleSlot(js_day_of_week(local), local.hour, local.minute)


def fallback_slot(reference: datetime, tz: ZoneInfo) -> datetime:
    """Tomorrow at the default target time, used when hours yield no slot."""
    tomorrow = start_of_local_day(reference, tz) + timedelta(days=1)
    return _at_time(tomorrow, DEFAULT_TARGET_HOUR, DEFAULT_TARGET_MINUTE)


def same_time_tomorrow(reference: datetime, tz: ZoneInfo, hour: int, minute: int) -> datetime:
    """The schedule's own time of day, one calendar day after the reference."""
    tomorrow = start_of_local_day(reference, tz) + timedelta(days=1)
    return _at_time(tomorrow, hour, minute)
