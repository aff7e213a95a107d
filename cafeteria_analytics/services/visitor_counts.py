# cafeteria_analytics/services/visitor_counts.py
"""
"Total served" from the cumulative in_count counter.

The device counter resets on restart and is sampled irregularly, so the total is
rebuilt from positive steps between consecutive samples:

    [10, 15, 12, 20] → (15 - 10) + (20 - 12) = 13

Non-positive steps (reset, duplicate, out-of-order sample) are dropped, never
subtracted. This undercounts across a reset.
"""

from collections import defaultdict
from typing import Iterable


def total_served(records: Iterable) -> int:
    """Sum of positive in_count deltas after sorting by (timestamp, id)."""
    samples = sorted(
        (r for r in records if r.in_count is not None),
        key=lambda r: (r.timestamp, r.id or 0),
    )
    total = 0
    for previous, current in zip(samples, samples[1:]):
        delta = current.in_count - previous.in_count
        if delta > 0:
            total += delta
    return total


def total_served_by_counter(records: Iterable) -> dict:
    """Per counter_id totals; site-level records are ignored."""
    by_counter = defaultdict(list)
    for r in records:
        if r.counter_id is not None:
            by_counter[r.counter_id].append(r)
    return {counter_id: total_served(rows) for counter_id, rows in by_counter.items()}


def total_served_across_counters(records: Iterable) -> int:
    return sum(total_served_by_counter(records).values())
