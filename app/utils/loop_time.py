"""Time and input helpers shared by the loop timeline modules"""
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MS_PER_MINUTE = 60_000

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def clamp_int(value: Any, min_value: int, max_value: int, fallback: int) -> int:
    """
    Parse an integer out of loosely typed input and clamp it.

    Numbers are truncated toward zero, strings are read up to the first
    non-digit ("12min" -> 12). Anything unreadable yields the fallback.

    Args:
        value: Raw input (int, float, str or None)
        min_value: Lower bound (inclusive)
        max_value: Upper bound (inclusive)
        fallback: Returned as-is when the value cannot be read

    Returns:
        The clamped integer
    """
    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        try:
            n = int(value)
        except (ValueError, OverflowError):
            return fallback
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return fallback
        n = int(match.group(1))

    return min(max_value, max(min_value, n))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Read naive datetimes as UTC; aware ones are returned unchanged"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """
    IANA zone for a name such as "Asia/Kolkata"; None or blank means no zone.

    Raises:
        ValueError: If the zone is unknown
    """
    if name is None or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {name}") from e


def elapsed_ms(now: datetime, since: datetime) -> int:
    """Whole milliseconds from since to now (negative when since is in the future)"""
    return (now - since) // timedelta(milliseconds=1)


def format_countdown(ms: int) -> str:
    """Format a duration as MM:SS, e.g. 754000 -> "12:34" """
    total_seconds = max(0, int(ms) // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def next_start_at(now: datetime, start_minute: int, tz: Optional[tzinfo] = None) -> datetime:
    """
    Next instant at hh:start_minute:00 strictly after now.

    A loop scheduled for minute 30 at 10:12 starts at 10:30; the same request
    at 10:45 (or exactly at 10:30:00) rolls over to 11:30.

    The minute is read on the wall clock of tz (default: the zone of now).
    In zones offset by a fractional hour (+05:30, +05:45) minute 30 in the
    user's zone is a different instant than minute 30 in UTC.
    """
    local_now = now.astimezone(tz) if tz is not None else now
    candidate = local_now.replace(minute=start_minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate += timedelta(hours=1)
    return candidate.astimezone(now.tzinfo) if tz is not None else candidate
