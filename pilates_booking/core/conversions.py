"""Conversion helpers for common type coercion."""

from datetime import datetime, time, tzinfo
from typing import Optional, Union


def coerce_int(value: object) -> Optional[int]:
    """Return an int for valid string/int inputs, otherwise None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return None


def parse_hhmm(value: Union[str, time]) -> Optional[time]:
    """Parse ``HH:MM`` (seconds tolerated) into a time, None when malformed."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return time(hours, minutes)


def time_to_minutes(value: Union[str, time]) -> int:
    """Minutes since midnight."""
    parsed = parse_hhmm(value)
    if parsed is None:
        raise ValueError(f"Invalid time: {value!r}")
    return parsed.hour * 60 + parsed.minute


def minutes_to_hhmm(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``; values past 24h keep counting hours."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def ensure_aware(dt: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to naive datetimes, keep the offset of aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt
