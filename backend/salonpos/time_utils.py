from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD". None / "" -> None; a non-string raises TypeError, a malformed string ValueError."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError("date must be a YYYY-MM-DD string")
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def local_today(tz_name: str) -> date:
    """Calendar date at the salon right now."""
    return datetime.now(ZoneInfo(tz_name)).date()


def to_local_date(dt: datetime, tz_name: str) -> date:
    """Local calendar date of a stored (UTC-naive) timestamp."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name)).date()


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """
    UTC-naive [start, end) covering one local calendar day.

    The half-open end is the next local midnight, so 23:59:59.999999 is
    still inside the day. DST days are 23 or 25 hours long.
    """
    return local_range_bounds(day, day, tz_name)


def local_range_bounds(start_day: date, end_day: date, tz_name: str) -> tuple[datetime, datetime]:
    """UTC-naive [start, end) from local start_day 00:00 to the midnight after end_day."""
    tz = ZoneInfo(tz_name)
    start = datetime.combine(start_day, time.min, tzinfo=tz)
    end = datetime.combine(end_day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )
