"""
Date/time helpers, framework-agnostic.

MongoDB stores datetimes as naive UTC; drivers may hand them back naive or
aware depending on ``tz_aware``. Everything in the gateway compares aware UTC
values, so reads go through ``ensure_utc``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as an aware UTC datetime.

    Naive datetimes (no ``tzinfo``) are assumed to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_until(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole seconds from *now* until *moment*, rounded up, never negative."""
    now = now or utcnow()
    delta = (ensure_utc(moment) - now).total_seconds()
    if delta <= 0:
        return 0
    whole = int(delta)
    return whole if whole == delta else whole + 1
