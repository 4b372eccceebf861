"""
Datetime utility functions.
Provides timezone-aware helpers shared by the services.
"""

from datetime import date, datetime
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime.

    SQLite hands back naive datetimes for DateTime(timezone=True) columns,
    so naive values are interpreted as already being UTC.

    Args:
        value: Datetime (naive or aware) or None

    Returns:
        Aware UTC datetime, or None if value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a stored datetime (UTC), or None."""
    value = ensure_utc(value)
    return value.isoformat() if value else None


def calculate_age(birth_date: Optional[Union[date, datetime]], today: Optional[date] = None) -> int:
    """
    Whole years between a birth date and today.

    One year is subtracted when this year's birthday has not happened yet.
    A missing birth date counts as age 0.

    Examples:
        >>> calculate_age(date(2000, 6, 15), date(2026, 6, 14))
        25
        >>> calculate_age(date(2000, 6, 15), date(2026, 6, 15))
        26
    """
    if birth_date is None:
        return 0
    if isinstance(birth_date, datetime):
        birth_date = birth_date.date()
    if today is None:
        today = utcnow().date()

    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def start_of_month(value: datetime) -> datetime:
    """Midnight UTC on the first day of value's calendar month."""
    value = ensure_utc(value)
    return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
