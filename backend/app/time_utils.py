from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


def business_day(dt: Optional[datetime] = None) -> date:
    """Calendar day (UTC) a timestamp belongs to; defaults to today."""
    return (dt or utcnow()).date()


def business_day_bounds(day: Optional[date] = None) -> tuple[datetime, datetime]:
    """Half-open [start, end) UTC-naive bounds of a calendar day."""
    day = day or business_day()
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)
