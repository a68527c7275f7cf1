"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc_datetime(value: date | datetime) -> datetime:
    """Normalise a date or datetime to an aware UTC datetime.

    A bare date means midnight UTC of that day. Naive datetimes are
    assumed to already be UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)
