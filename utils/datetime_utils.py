"""
Timezone-aware datetime helpers.

Everything here returns aware datetimes in UTC. Values read back from SQLite
come out naive; pass them through ensure_utc() before comparing them with
anything produced here.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Return ``dt`` as an aware UTC datetime.

    Naive values are taken to be UTC already; aware values in another zone
    are converted.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def to_epoch_ms(dt: datetime) -> int:
    """Integer epoch milliseconds, the unit used by pixel cache busters."""
    return int(ensure_utc(dt).timestamp() * 1000)


def days_before(reference: datetime, days: int) -> datetime:
    """
    The instant exactly ``days`` days before ``reference``.

    Used as the inclusive lower bound of an EPC or dashboard window, so a
    click stamped exactly at the returned instant is inside the window.

    Raises:
        ValueError: If days is negative or not an integer
    """
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValueError("Days must be an integer")
    if days < 0:
        raise ValueError("Days cannot be negative")
    return ensure_utc(reference) - timedelta(days=days)


def format_utc_iso(dt: Optional[datetime] = None) -> str:
    """ISO 8601 string with an explicit +00:00 offset; defaults to now."""
    return (ensure_utc(dt) if dt else utc_now()).isoformat()
