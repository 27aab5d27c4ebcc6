"""UTC time helpers.

Timestamps are stored as naive datetimes in UTC; aware values coming in from
requests are converted before they reach the database.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_of_week(value: datetime) -> int:
    """Day index of a UTC instant with 0 = Sunday through 6 = Saturday."""
    return (value.weekday() + 1) % 7
