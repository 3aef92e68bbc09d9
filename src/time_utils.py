"""Time zone and epoch-millisecond helpers."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def resolve_timezone(timezone_name: str) -> ZoneInfo:
    """Return the ZoneInfo for an IANA name."""
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Invalid timezone: {timezone_name}") from exc


def to_epoch_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds, treating naive values as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * MS_PER_SECOND))


def from_epoch_ms(value: int, tz: ZoneInfo | timezone = timezone.utc) -> datetime:
    """Convert epoch milliseconds to an aware datetime in the given zone."""
    return datetime.fromtimestamp(value / MS_PER_SECOND, tz)


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return to_epoch_ms(datetime.now(timezone.utc))


def local_date(value: int, timezone_name: str) -> date:
    """Return the calendar date of an instant in the named zone."""
    return from_epoch_ms(value, resolve_timezone(timezone_name)).date()


def format_ms(value: int | None) -> str:
    """Return an ISO-formatted UTC timestamp or 'None' when missing."""
    if value is None:
        return "None"
    return from_epoch_ms(value).isoformat()


def parse_timestamp(value: str | int | float | datetime) -> int:
    """Coerce an ISO string, epoch milliseconds, or datetime to epoch milliseconds."""
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    if isinstance(value, (int, float)):
        return int(value)
    text = value.strip()
    if not text:
        raise ValueError("Timestamp must not be empty.")
    if text.lstrip("-").isdigit():
        return int(text)
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    return to_epoch_ms(datetime.fromisoformat(text))
