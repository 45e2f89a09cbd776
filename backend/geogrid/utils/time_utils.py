# backend/geogrid/utils/time_utils.py
"""
Timezone and time utilities.

Every instant stored in the database is UTC. Schedule arithmetic happens in
the business's own timezone and is converted back to UTC before it is
persisted.
"""

import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..constants import DEFAULT_TIMEZONE

# Constant for UTC timezone to avoid hardcoded timezone.utc references
UTC_TIMEZONE = timezone.utc

_TIME_OF_DAY_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def utc_now() -> datetime:
    """
    Get current UTC timestamp.

    Returns:
        Current timezone-aware UTC datetime object
    """
    return datetime.now(UTC_TIMEZONE)


def validate_timezone(timezone_str: str) -> bool:
    """Check whether a timezone string is a valid IANA name."""
    try:
        ZoneInfo(timezone_str)
        return True
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return False


def resolve_timezone(timezone_str: Optional[str]) -> ZoneInfo:
    """
    Resolve a timezone name, falling back to UTC for empty or unknown names.

    Callers that want to report the fallback should check validate_timezone
    first.
    """
    if timezone_str and validate_timezone(timezone_str):
        return ZoneInfo(timezone_str)
    return ZoneInfo(DEFAULT_TIMEZONE)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC_TIMEZONE)
    return dt.astimezone(UTC_TIMEZONE)


def start_of_local_day(reference: datetime, tz: ZoneInfo) -> datetime:
    """Midnight of the reference instant's calendar day in the given timezone."""
    local = ensure_utc(reference).astimezone(tz)
    return datetime.combine(local.date(), time(0, 0), tzinfo=tz)


def at_local_minutes(day_start: datetime, minutes: int) -> datetime:
    """
    Wall-clock instant ``minutes`` after midnight on the day of ``day_start``.

    Uses wall-clock arithmetic so 15:00 stays 15:00 across DST transitions.
    A value of 1440 resolves to midnight of the following day.
    """
    tz = day_start.tzinfo
    base_date = day_start.date()
    if minutes >= 1440:
        base_date = base_date + timedelta(days=minutes // 1440)
        minutes = minutes % 1440
    return datetime.combine(base_date, time(minutes // 60, minutes % 60), tzinfo=tz)


def js_day_of_week(dt: datetime) -> int:
    """Day of week with 0=Sunday .. 6=Saturday."""
    return (dt.weekday() + 1) % 7


def parse_time_of_day(time_str: str) -> Optional[Tuple[int, int]]:
    """
    Parse 'HH:MM' or 'HH:MM:SS' into an (hour, minute) tuple.

    Returns:
        (hour, minute) or None if the string is malformed or out of range
    """
    if not isinstance(time_str, str):
        return None
    match = _TIME_OF_DAY_PATTERN.match(time_str)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def format_time_of_day(hour: int, minute: int) -> str:
    """Format an hour/minute pair as the 'HH:MM:00' string stored in the database."""
    return f"{hour:02d}:{minute:02d}:00"
