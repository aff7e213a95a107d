# cafeteria_analytics/services/time_buckets.py
"""
Calendar bucketing for the aggregation engine.

Records are grouped by a BucketKey derived from their timestamp:
  hourly  → "HH:MM"   (minute of day)
  daily   → "HH:00"   (hour of day)
  weekly  → "Sun".."Sat"
  monthly → "Jan".."Dec"

Bucketing is lossy: two Mondays in the range share the "Mon" bucket.
BucketMap iterates in the natural order of its keys, not insertion order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Generic, Iterator, Optional, TypeVar

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

V = TypeVar("V")


class Granularity(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value) -> "Granularity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown granularity '{value}' (expected hourly|daily|weekly|monthly)")


@dataclass(frozen=True, order=True)
class BucketKey:
    order: tuple
    label: str = field(compare=False)
    hour: Optional[int] = field(default=None, compare=False)


def sunday_index(ts: datetime) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (ts.weekday() + 1) % 7


def bucket_key(ts: datetime, granularity: Granularity) -> BucketKey:
    if granularity == Granularity.HOURLY:
        return BucketKey((ts.hour, ts.minute), f"{ts.hour:02d}:{ts.minute:02d}", ts.hour)
    if granularity == Granularity.DAILY:
        return BucketKey((ts.hour,), f"{ts.hour:02d}:00", ts.hour)
    if granularity == Granularity.WEEKLY:
        day = sunday_index(ts)
        return BucketKey((day,), DAY_NAMES[day])
    return BucketKey((ts.month,), MONTH_NAMES[ts.month - 1])


def minute_key(ts: datetime, granularity: Granularity) -> BucketKey:
    """Minute-resolution keys used by the enhanced congestion view."""
    hm = f"{ts.hour:02d}:{ts.minute:02d}"
    if granularity == Granularity.WEEKLY:
        day = sunday_index(ts)
        return BucketKey((day, ts.hour, ts.minute), f"{DAY_NAMES[day]} {hm}", ts.hour)
    if granularity == Granularity.MONTHLY:
        return BucketKey((ts.month, ts.day, ts.hour, ts.minute), f"{ts.month:02d}/{ts.day:02d} {hm}", ts.hour)
    return BucketKey((ts.hour, ts.minute), hm, ts.hour)


class BucketMap(Generic[V]):
    """Ordered map of BucketKey → V, with values created on first access."""

    def __init__(self, factory: Callable[[], V]):
        self._factory = factory
        self._data: dict[BucketKey, V] = {}

    def __getitem__(self, key: BucketKey) -> V:
        if key not in self._data:
            self._data[key] = self._factory()
        return self._data[key]

    def __contains__(self, key: BucketKey) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[BucketKey]:
        return iter(sorted(self._data))

    def items(self) -> list[tuple[BucketKey, V]]:
        return [(key, self._data[key]) for key in sorted(self._data)]

    @classmethod
    def group(cls, records, key_fn: Callable, factory: Callable[[], V] = list) -> "BucketMap":
        """Group records into lists keyed by key_fn(record)."""
        buckets = cls(factory)
        for record in records:
            buckets[key_fn(record)].append(record)
        return buckets
