"""
Datetime utility functions for handling timezone-aware datetimes.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    This utility provides a consistent, mockable way to get the current UTC time
    throughout the engine. Session clocks (start/end time, time-limit checks)
    all go through this function so tests can patch it.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from cat_engine.core.datetime_utils import utc_now
        >>> current_time = utc_now()
        >>> current_time.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """
    Whole milliseconds between two timezone-aware datetimes.

    Args:
        start: Earlier datetime
        end: Later datetime

    Returns:
        Elapsed milliseconds, never negative.
    """
    delta = end - start
    return max(0, int(delta.total_seconds() * 1000))
