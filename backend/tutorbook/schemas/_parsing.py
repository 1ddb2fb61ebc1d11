"""Shared field parsers for request schemas."""

from datetime import time
import re

import pytz

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_REGEX = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")


def ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def parse_wall_clock(value: object) -> object:
    """Accept HH:MM or HH:MM:SS strings; seconds are dropped."""
    if isinstance(value, str):
        candidate = value.strip()
        if not TIME_REGEX.fullmatch(candidate):
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
        try:
            parsed = time.fromisoformat(candidate)
        except ValueError:
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
        return parsed.replace(second=0, microsecond=0)
    return value


def validate_timezone_name(value: str) -> str:
    if value not in pytz.all_timezones_set:
        raise ValueError(f"Unknown timezone: {value}")
    return value
