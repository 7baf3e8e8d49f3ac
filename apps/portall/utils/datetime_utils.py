"""
Datetime utility functions.
"""

import calendar
from datetime import datetime
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Shift a datetime by whole calendar months, clamping the day to the target month.

    Args:
        moment: Starting datetime (timezone is preserved)
        months: Number of months to add (may be negative)

    Returns:
        Shifted datetime, e.g. Jan 31 + 1 month -> Feb 28/29

    Examples:
        >>> add_months(datetime(2025, 1, 31), 1)
        datetime.datetime(2025, 2, 28, 0, 0)
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from start to end (never negative)."""
    return max(0, (end - start).days)
