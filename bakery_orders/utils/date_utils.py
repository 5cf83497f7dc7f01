"""
Date helpers for business-day reporting.

Business days follow local wall-clock midnight, not UTC: an order placed at
00:30 local time belongs to that local day.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple


class DateUtils:
    """Local calendar-day helpers."""

    @staticmethod
    def day_bounds(day: date) -> Tuple[datetime, datetime]:
        """[start, end) of a local calendar day."""
        start = datetime.combine(day, time.min)
        return start, start + timedelta(days=1)

    @staticmethod
    def previous_day_bounds(reference: date) -> Tuple[datetime, datetime]:
        """[start, end) of the local calendar day before ``reference``."""
        return DateUtils.day_bounds(reference - timedelta(days=1))

    @staticmethod
    def range_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Half-open datetime bounds covering whole days from..to inclusive."""
        start = DateUtils.day_bounds(date_from)[0] if date_from else None
        end = DateUtils.day_bounds(date_to)[1] if date_to else None
        return start, end

