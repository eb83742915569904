"""
Datetime utilities for consistent timezone handling across the application.

Appointments store a naive calendar date and a naive local time-of-day that
are interpreted in the clinic timezone. Audit timestamps are timezone-aware UTC.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from core.constants import MINUTES_PER_DAY

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")


def utc_now() -> datetime:
    """Get the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@lru_cache
def get_timezone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, cached."""
    return ZoneInfo(name)


def local_today(tz_name: str) -> date:
    """Today's date in the given clinic timezone."""
    return utc_now().astimezone(get_timezone(tz_name)).date()


def parse_date(value: str) -> date:
    """
    Parse a ``YYYY-MM-DD`` string.

    Raises:
        ValueError: If the format is wrong or the date does not exist
    """
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date format: {value!r}. Use YYYY-MM-DD")
    return date.fromisoformat(value)


def parse_time(value: str) -> time:
    """
    Parse an ``HH:MM`` (or ``HH:MM:SS``) string.

    Raises:
        ValueError: If the format is wrong or out of range
    """
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM")
    return time.fromisoformat(value)


def minutes_since_midnight(value: time) -> int:
    return value.hour * 60 + value.minute


def interval_minutes(start: time, duration_minutes: int) -> tuple[int, int]:
    """Return the half-open ``[start, end)`` window in minutes since midnight."""
    start_minute = minutes_since_midnight(start)
    return start_minute, start_minute + duration_minutes


def fits_in_day(start: time, duration_minutes: int) -> bool:
    """True when ``[start, start+duration)`` stays within one calendar date."""
    _, end_minute = interval_minutes(start, duration_minutes)
    return end_minute <= MINUTES_PER_DAY


def combine_local(day: date, start: time, tz_name: str) -> datetime:
    """Combine a naive clinic-local date and time into an aware datetime."""
    return datetime.combine(day, start).replace(tzinfo=get_timezone(tz_name))


def appointment_window(day: date, start: time, duration_minutes: int, tz_name: str) -> tuple[datetime, datetime]:
    """Aware start and end datetimes of an appointment."""
    start_dt = combine_local(day, start, tz_name)
    return start_dt, start_dt + timedelta(minutes=duration_minutes)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware UTC.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_rfc3339_utc(dt: datetime) -> str:
    """Format a datetime as RFC3339 in UTC with a ``Z`` suffix (Google API format)."""
    utc_dt = ensure_utc(dt)
    assert utc_dt is not None
    iso_str = utc_dt.isoformat()
    if iso_str.endswith('+00:00'):
        return iso_str[:-6] + 'Z'
    return iso_str


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp (``Z`` or offset suffix) into an aware datetime."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_time_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
