"""
Timezone helpers for the booking engine.

Rules:
- Schedules and bookings are expressed as local wall-clock time + IANA timezone
- All storage of instants: UTC
- All comparisons: UTC
- "Today" is always evaluated in the tutor's timezone
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from .exceptions import ValidationException


class NonExistentLocalTimeError(ValueError):
    """A wall-clock time that is skipped by a DST transition."""


def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationException: If the name is empty or unknown
    """
    if not tz_str:
        raise ValidationException("Timezone is required", code="INVALID_TIMEZONE")
    try:
        return pytz.timezone(tz_str)
    except pytz.UnknownTimeZoneError:
        raise ValidationException(
            f"Unknown timezone: {tz_str}",
            code="INVALID_TIMEZONE",
            details={"timezone": tz_str},
        )


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalise aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_to_utc(local_date: date, local_time: time, timezone_str: str) -> datetime:
    """
    Convert local date/time to UTC.

    Uses the timezone rules valid on local_date (not today), so DST
    transitions are honoured. A wall-clock time that occurs twice
    (fall back) resolves to its first occurrence.

    Raises:
        NonExistentLocalTimeError: If the time is skipped (spring forward)
    """
    tz = get_timezone(timezone_str)
    naive_dt = datetime.combine(local_date, local_time)  # Intentionally naive for pytz.localize()

    try:
        local_dt = tz.localize(naive_dt, is_dst=None)
    except pytz.exceptions.AmbiguousTimeError:
        local_dt = tz.localize(naive_dt, is_dst=True)
    except pytz.exceptions.NonExistentTimeError:
        raise NonExistentLocalTimeError(
            f"The time {local_time.strftime('%H:%M')} does not exist on "
            f"{local_date} in {timezone_str} due to Daylight Saving Time"
        )

    return local_dt.astimezone(timezone.utc)


def utc_to_local(utc_dt: datetime, timezone_str: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    return ensure_utc(utc_dt).astimezone(get_timezone(timezone_str))


def today_in(timezone_str: str, now_utc: datetime) -> date:
    """Calendar date of now_utc as seen in timezone_str."""
    return utc_to_local(now_utc, timezone_str).date()
