"""Time and datetime utilities."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gobering.core.config import settings


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC.

    SQLite hands back naive values for timezone-aware columns.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone, falling back to the configured default."""
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.default_timezone)


def local_today(zone_name: str | None, now: datetime | None = None) -> date:
    """Calendar date in the given zone."""
    current = ensure_utc(now) if now else utc_now()
    return current.astimezone(get_zone(zone_name)).date()


def local_datetime(day: date, at: time, zone_name: str | None) -> datetime:
    """Aware datetime for a wall-clock date/time in the given zone."""
    return datetime.combine(day, at, tzinfo=get_zone(zone_name))


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" or "HH:MM:SS".

    Raises:
        ValueError: if the string is not a valid time of day
    """
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue

    raise ValueError(f"Could not parse time: {value}")


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
