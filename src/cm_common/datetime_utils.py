"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def deadline_from(start: datetime, *, days: int = 0, seconds: int = 0) -> datetime:
    """Deadline `days`/`seconds` after `start` (offer expiry, settlement hold)."""
    return start + timedelta(days=days, seconds=seconds)


def has_passed(deadline: datetime, now: datetime) -> bool:
    """True once `now` has reached the deadline (the deadline itself counts as passed)."""
    return now >= deadline
