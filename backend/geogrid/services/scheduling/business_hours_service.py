# backend/geogrid/services/scheduling/business_hours_service.py

"""
Business Hours Service - recurring weekly opening hours.

Parses the ``windows_json`` hours configuration stored per business and
answers questions about open windows in the business's own timezone.

Configuration format:
    {
        "mon": "09:00-17:00",
        "tuesday": ["08:00-12:00", "13:00-18:00"],
        "Fri": {"open": "18:00", "close": "02:00"},
        "sat": "24h",
        "sun": "closed"
    }

Business Rules:
- Day keys may be short (mon) or long (monday), matched case-insensitively
- "closed" / "none" / empty values mean no windows for that day
- "24h" / "24hr" / "24hrs" is open the whole day; "24:00" means midnight
- A window whose end is before its start wraps overnight. For scheduling it
  is clipped at midnight of its own day (windows_for_day); windows_today
  additionally includes the early-morning spillover from the previous day
- Windows whose start equals their end are invalid and ignored
"""

import json
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, NamedTuple, Optional
from zoneinfo import ZoneInfo

from ...constants import DAYS_PER_WEEK, MINUTES_PER_DAY
from ...enums import LoggerName
from ...services.logger import get_service_logger
from ...utils.time_utils import at_local_minutes, ensure_utc, start_of_local_day

logger = get_service_logger(LoggerName.BUSINESS_HOURS)

SHORT_DAY_KEYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
LONG_DAY_KEYS = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]

CLOSED_MARKERS = {"closed", "none"}
ALL_DAY_MARKERS = {"24h", "24hr", "24hrs"}

_CLOCK_PATTERN = re.compile(r"^(\d{1,2})(?::(\d{1,2}))?$")


class HoursRange(NamedTuple):
    """A parsed range in minutes since local midnight."""

    start: int
    end: int
    wraps: bool


class OpenWindow(NamedTuple):
    """A concrete open window as timezone-aware datetimes, end exclusive."""

    start: datetime
    end: datetime


def load_hours_config(raw: Any) -> Dict[str, Any]:
    """
    Normalize a stored hours configuration into a dict.

    Accepts a dict, a JSON string, or None. Anything unparsable yields an
    empty configuration (closed every day).
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring unparsable business hours JSON")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _clock_to_minutes(value: str) -> Optional[int]:
    text = value.strip()
    if text == "24:00":
        return MINUTES_PER_DAY
    match = _CLOCK_PATTERN.match(text)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def parse_range(segment: Any) -> Optional[HoursRange]:
    """
    Parse one hours segment.

    Args:
        segment: "HH:MM-HH:MM", {"open": "HH:MM", "close": "HH:MM"} or a marker

    Returns:
        HoursRange, or None for closed markers and invalid segments
    """
    if segment is None:
        return None

    if isinstance(segment, dict):
        opening = segment.get("open") if isinstance(segment.get("open"), str) else ""
        closing = segment.get("close") if isinstance(segment.get("close"), str) else ""
        source = f"{opening}-{closing}"
    else:
        source = str(segment)

    text = source.strip()
    if not text:
        return None

    lowered = text.lower()
    if lowered in CLOSED_MARKERS:
        return None
    if lowered in ALL_DAY_MARKERS:
        return HoursRange(0, MINUTES_PER_DAY, False)

    if "-" not in text:
        logger.debug(f"Skipping hours segment without a range: {text!r}")
        return None

    start_text, _, end_text = text.partition("-")
    if not start_text.strip() or not end_text.strip():
        return None

    start = _clock_to_minutes(start_text)
    end = _clock_to_minutes(end_text)
    if start is None or end is None or start == end or start == MINUTES_PER_DAY:
        logger.debug(f"Skipping invalid hours segment: {text!r}")
        return None

    return HoursRange(start, end, end < start)


def _find_day_value(hours: Dict[str, Any], weekday_index: int) -> List[Any]:
    lowered = {str(key).lower(): value for key, value in hours.items()}
    for key in (SHORT_DAY_KEYS[weekday_index], LONG_DAY_KEYS[weekday_index]):
        value = lowered.get(key)
        if value is None:
            continue
        segments = _normalize_segments(value)
        if segments:
            return segments
    return []


def _normalize_segments(raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return [segment for segment in raw if segment not in (None, "")]
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return [raw]


def ranges_for_weekday(hours: Dict[str, Any], weekday_index: int) -> List[HoursRange]:
    """
    Parsed ranges configured for a weekday.

    Args:
        hours: Normalized hours configuration
        weekday_index: 0=Monday .. 6=Sunday (Python weekday numbering)
    """
    parsed = (parse_range(segment) for segment in _find_day_value(hours, weekday_index))
    return [r for r in parsed if r is not None]


def parse_business_hours(hours_config: Any) -> Dict[int, List[HoursRange]]:
    """
    Parse a raw hours configuration into ranges keyed by Python weekday.

    Days without valid ranges are omitted.
    """
    hours = load_hours_config(hours_config)
    parsed = {day: ranges_for_weekday(hours, day) for day in range(DAYS_PER_WEEK)}
    return {day: ranges for day, ranges in parsed.items() if ranges}


def _normalize_windows(
    windows: List[OpenWindow], day_start: datetime, day_end: datetime
) -> List[OpenWindow]:
    clipped = [
        OpenWindow(max(w.start, day_start), min(w.end, day_end)) for w in windows
    ]
    clipped = sorted((w for w in clipped if w.end > w.start), key=lambda w: w.start)

    merged: List[OpenWindow] = []
    for window in clipped:
        if merged and window.start <= merged[-1].end:
            previous = merged[-1]
            merged[-1] = OpenWindow(previous.start, max(previous.end, window.end))
        else:
            merged.append(window)
    return merged


def windows_for_day(hours_config: Any, tz: ZoneInfo, day: datetime) -> List[OpenWindow]:
    """
    Open windows for the calendar day containing ``day`` in the business timezone.

    Overnight windows are clipped at the following midnight.
    """
    hours = load_hours_config(hours_config)
    day_start = start_of_local_day(day, tz)
    day_end = at_local_minutes(day_start, MINUTES_PER_DAY)

    windows = []
    for r in ranges_for_weekday(hours, day_start.weekday()):
        end = day_end if r.wraps else at_local_minutes(day_start, r.end)
        windows.append(OpenWindow(at_local_minutes(day_start, r.start), end))

    return _normalize_windows(windows, day_start, day_end)


def windows_today(hours_config: Any, tz: ZoneInfo, reference: datetime) -> List[OpenWindow]:
    """
    All open windows overlapping the reference's calendar day.

    Unlike windows_for_day, this includes the early-morning tail of an
    overnight window that opened the previous evening.
    """
    hours = load_hours_config(hours_config)
    day_start = start_of_local_day(reference, tz)
    day_end = at_local_minutes(day_start, MINUTES_PER_DAY)

    windows = windows_for_day(hours, tz, reference)
    yesterday = (day_start.weekday() - 1) % DAYS_PER_WEEK
    for r in ranges_for_weekday(hours, yesterday):
        if r.wraps:
            windows.append(OpenWindow(day_start, at_local_minutes(day_start, r.end)))

    return _normalize_windows(windows, day_start, day_end)


def is_open_now(hours_config: Any, tz: ZoneInfo, reference: datetime) -> bool:
    """Whether the business is open at the reference instant."""
    instant = ensure_utc(reference)
    return any(
        w.start <= instant < w.end for w in windows_today(hours_config, tz, reference)
    )


def next_open_at(
    hours_config: Any,
    tz: ZoneInfo,
    reference: datetime,
    search_days: int = DAYS_PER_WEEK,
) -> Optional[datetime]:
    """
    The next window opening strictly after the reference instant.

    Returns:
        Opening instant in the business timezone, or None if closed for the
        whole search horizon
    """
    instant = ensure_utc(reference)
    day_start = start_of_local_day(reference, tz)
    for offset in range(search_days):
        day = day_start + timedelta(days=offset)
        for window in windows_for_day(hours_config, tz, day):
            if window.start > instant:
                return window.start
    return None
