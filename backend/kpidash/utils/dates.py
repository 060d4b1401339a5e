"""Date helpers for display strings and query windows.

All timestamps in kpidash are UTC. Naive datetimes (as stored by SQLite and
`datetime.utcnow`) are interpreted as UTC, and ISO strings are accepted
wherever a timestamp is.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union

Timestamp = Union[datetime, str]

PERIODS = ("week", "month", "quarter", "year")


def as_utc(value: Timestamp) -> datetime:
    """Coerce a datetime or ISO-8601 string to an aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_since(value: Timestamp, now: Optional[datetime] = None) -> float:
    now = as_utc(now) if now is not None else utcnow()
    return (now - as_utc(value)).total_seconds() / 3600


def format_date(value: Timestamp) -> str:
    """US-style short date, e.g. ``8/1/2024``."""
    dt = as_utc(value)
    return f"{dt.month}/{dt.day}/{dt.year}"


def format_datetime(value: Timestamp) -> str:
    """Short date and 12-hour time, e.g. ``8/1/2024, 3:04:05 PM``."""
    dt = as_utc(value)
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{format_date(dt)}, {hour}:{dt.minute:02d}:{dt.second:02d} {meridiem}"


def get_relative_time(value: Timestamp, now: Optional[datetime] = None) -> str:
    """Compact relative time ("Just now", "5m ago", "3h ago", "2d ago"), else the date."""
    now = as_utc(now) if now is not None else utcnow()
    past = as_utc(value)
    seconds = int((now - past).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return format_date(past)


def _months_back(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 - months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def get_date_range(period: str, now: Optional[datetime] = None) -> Dict[str, str]:
    """Return ISO ``start``/``end`` for the trailing week, month, quarter or year."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    end = as_utc(now) if now is not None else utcnow()

    if period == "week":
        start = end - timedelta(days=7)
    elif period == "month":
        start = _months_back(end, 1)
    elif period == "quarter":
        start = _months_back(end, 3)
    else:
        start = _months_back(end, 12)

    return {"start": start.isoformat(), "end": end.isoformat()}
