# cafeteria_analytics/utils/clock.py
"""
Local wall clock.
Counters publish naive local timestamps, so everything stored is naive local time
in settings.TIMEZONE (IST by default).
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from cafeteria_analytics.config import settings


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """Current time in the configured zone, without tzinfo."""
    return datetime.now(local_zone()).replace(tzinfo=None)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(local_zone()).replace(tzinfo=None)


def day_start(value: datetime) -> datetime:
    """The configured start of the business day (07:00) on value's date."""
    return value.replace(hour=settings.DAY_START_HOUR, minute=0, second=0, microsecond=0)
