"""Time Utilities - UTC timestamps, local calendar days and hour windows"""
from datetime import datetime, timezone, timedelta, tzinfo
from typing import Optional
from dateutil import parser as date_parser
from dateutil import tz


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def get_zone(name: str) -> tzinfo:
    """Resolve an IANA zone name, falling back to UTC for unknown names"""
    zone = tz.gettz(name)
    return zone if zone is not None else timezone.utc


def local_hour(now: datetime, zone: tzinfo) -> int:
    """Hour of day (0-23) of `now` in the given zone"""
    return ensure_utc(now).astimezone(zone).hour


def start_of_day(now: datetime, zone: tzinfo) -> datetime:
    """Midnight of the current local day, returned in UTC"""
    local = ensure_utc(now).astimezone(zone)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def day_key(now: datetime, zone: tzinfo) -> str:
    """Calendar day (YYYY-MM-DD) of `now` in the given zone"""
    return ensure_utc(now).astimezone(zone).date().isoformat()


def calendar_days_between(earlier: datetime, later: datetime, zone: tzinfo) -> int:
    """Number of local calendar days from `earlier` to `later`"""
    first = ensure_utc(earlier).astimezone(zone).date()
    second = ensure_utc(later).astimezone(zone).date()
    return (second - first).days


def hour_in_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """
    Check whether an hour falls inside a daily [start, end) window.

    A window whose start is after its end wraps past midnight,
    e.g. start=22 end=8 covers 22:00-07:59. Equal bounds cover nothing.
    """
    if start_hour == end_hour:
        return False
    if start_hour < end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


def is_older_than(dt: Optional[datetime], seconds: int, now: Optional[datetime] = None) -> bool:
    """
    Check if a timestamp lies further in the past than `seconds`.

    Missing timestamps count as old.
    """
    if dt is None:
        return True
    reference = now or utc_now()
    return ensure_utc(dt) < reference - timedelta(seconds=seconds)


def hours_until(dt: datetime, now: Optional[datetime] = None) -> int:
    """Whole hours (rounded) until the given datetime"""
    reference = now or utc_now()
    return int(round((ensure_utc(dt) - reference).total_seconds() / 3600))

