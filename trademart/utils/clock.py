"""UTC time helpers shared by quota period math and persistence."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_start(now: datetime) -> datetime:
    now = as_utc(now)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def week_start(now: datetime) -> datetime:
    """Monday 00:00 UTC of the week containing `now`."""
    start = day_start(now)
    return start - timedelta(days=start.weekday())


def year_start(now: datetime) -> datetime:
    return day_start(now).replace(month=1, day=1)
