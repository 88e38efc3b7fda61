"""Shared timezone helpers.

Convention:
- Wire format from the journal backend: ISO-8601. Timestamps without an
  offset are IST wall-clock time, which is how the backend formats token expiry
- Internal comparisons: UTC
- Display to Indian users: IST
"""

from datetime import datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30))


def ensure_utc(value: datetime) -> datetime:
    """Convert to UTC, reading a naive datetime as IST."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=IST)
    return value.astimezone(timezone.utc)


def format_ist(value: datetime | None) -> str:
    if value is None:
        return "-"
    return ensure_utc(value).astimezone(IST).strftime("%d %b %Y, %I:%M %p IST")
