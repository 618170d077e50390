"""Time helpers.

All instants are stored as naive UTC datetimes, so SQLite and PostgreSQL
round-trip them identically.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
import pytz


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive input is assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant (``Z`` suffix accepted) into naive UTC."""
    return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def get_zone(name: Optional[str], default: str = "UTC"):
    """Resolve an IANA zone name, falling back to ``default`` for unknown zones."""
    try:
        return pytz.timezone(name or default)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(default)


def local_day_bounds(day: date, zone_name: Optional[str]) -> Tuple[datetime, datetime]:
    """UTC bounds ``[start, end)`` of a calendar day in the given zone."""
    zone = get_zone(zone_name)
    start_local = zone.localize(datetime.combine(day, time.min))
    end_local = zone.localize(datetime.combine(day + timedelta(days=1), time.min))
    return to_naive_utc(start_local), to_naive_utc(end_local)


def local_date_of(instant: datetime, zone_name: Optional[str]) -> date:
    """Calendar date of a naive-UTC instant as seen in the given zone."""
    zone = get_zone(zone_name)
    return pytz.utc.localize(instant).astimezone(zone).date()


def local_time_to_utc(day: date, hh_mm: str, zone_name: Optional[str]) -> datetime:
    """Combine a local day and ``HH:MM`` wall-clock time into naive UTC."""
    hours, minutes = (int(part) for part in hh_mm.split(":"))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time of day: {hh_mm}")
    zone = get_zone(zone_name)
    local = zone.localize(datetime.combine(day, time(hours, minutes)))
    return to_naive_utc(local)


def to_local(instant: datetime, zone_name: Optional[str]) -> datetime:
    """Aware local datetime for a naive-UTC instant."""
    return pytz.utc.localize(instant).astimezone(get_zone(zone_name))
