"""
Date and Time utilities

Age calculations for the sync thresholds. All timestamps are handled as
timezone-aware UTC values.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Number of complete days elapsed between two timestamps"""
    return (ensure_utc(later) - ensure_utc(earlier)).days


def whole_hours_between(earlier: datetime, later: datetime) -> int:
    """Number of complete hours elapsed between two timestamps"""
    seconds = (ensure_utc(later) - ensure_utc(earlier)).total_seconds()
    return int(seconds // 3600)
