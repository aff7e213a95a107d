# cafeteria_analytics/services/metric_normalizer.py
"""
Metric normalisation: canonical units and derived classifications.

Devices report durations in seconds; records store minutes. A single
"representative" duration per record is chosen by a fixed trust order
(avg dwell → estimated wait → manual wait) and drives the queue estimate,
per-counter averages and the dwell histogram.

Two classification schemes exist side by side:
  - telemetry records: congestion from occupancy %, service status from queue length
  - queue snapshots:   service/alert status from queue count + wait minutes
Both keep their thresholds exactly.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from cafeteria_analytics.exceptions import UnparseableMetric
from cafeteria_analytics.utils.json_parser import to_number
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

MINUTES_PER_PERSON = 2.0

# Congestion (occupancy %)
CONGESTION_MEDIUM_PCT = 40
CONGESTION_HIGH_PCT = 75

# Service status (queue length)
QUEUE_SHORT_WAIT = 8
QUEUE_MEDIUM_WAIT = 15
QUEUE_LONG_WAIT = 25

# Queue-snapshot scheme (wait minutes / queue count)
SNAPSHOT_SHORT_WAIT_MAX = 5
SNAPSHOT_MEDIUM_WAIT_MAX = 15
SNAPSHOT_WARNING_ABOVE = 10
SNAPSHOT_CRITICAL_ABOVE = 20

_RANGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


@dataclass
class NormalizedMetrics:
    current_occupancy: Optional[int]
    in_count: Optional[int]
    avg_dwell_time: Optional[float]
    max_dwell_time: Optional[float]
    estimated_wait_time: Optional[float]
    manual_wait_time: Optional[float]
    capacity: int
    occupancy_percentage: Optional[float]
    queue_length: Optional[int]
    congestion_level: Optional[str]
    service_status: Optional[str]

    @property
    def representative_duration(self) -> Optional[float]:
        return representative_duration(self.avg_dwell_time, self.estimated_wait_time, self.manual_wait_time)


# ── Field conversion ─────────────────────────────────────────────────────────

def parse_number(field: str, value: Any) -> Optional[float]:
    """to_number() that logs and drops unparseable text instead of raising."""
    try:
        return to_number(field, value)
    except UnparseableMetric as e:
        logger.warning(f"[INGEST] Ignoring {e}")
        return None


def parse_count(field: str, value: Any) -> Optional[int]:
    number = parse_number(field, value)
    if number is None:
        return None
    if number < 0:
        logger.warning(f"[INGEST] Ignoring negative {field}={value!r}")
        return None
    return int(number)


def seconds_to_minutes(seconds: Optional[float]) -> Optional[float]:
    """120 → 2.0. Zero, negative and missing values become None."""
    if seconds is None or seconds <= 0:
        return None
    return seconds / 60.0


# ── Derived values ───────────────────────────────────────────────────────────

def representative_duration(avg_dwell: Optional[float],
                            estimated_wait: Optional[float],
                            manual_wait: Optional[float]) -> Optional[float]:
    """First present, strictly positive value in trust order."""
    for value in (avg_dwell, estimated_wait, manual_wait):
        if value is not None and value > 0:
            return value
    return None


def estimate_queue_length(representative: Optional[float], occupancy: Optional[int]) -> Optional[int]:
    """ceil(minutes / 2); occupancy is the proxy when no duration is usable."""
    if representative is not None:
        return math.ceil(representative / MINUTES_PER_PERSON)
    return occupancy


def occupancy_percentage(occupancy: Optional[int], capacity: Optional[int]) -> Optional[float]:
    if occupancy is None or not capacity or capacity <= 0:
        return None
    return occupancy / capacity * 100


def classify_congestion(percentage: Optional[float]) -> Optional[str]:
    if percentage is None:
        return None
    if percentage < CONGESTION_MEDIUM_PCT:
        return "LOW"
    if percentage < CONGESTION_HIGH_PCT:
        return "MEDIUM"
    return "HIGH"


def classify_service_status(queue_length: Optional[int]) -> Optional[str]:
    if queue_length is None:
        return None
    if queue_length < QUEUE_SHORT_WAIT:
        return "READY_TO_SERVE"
    if queue_length < QUEUE_MEDIUM_WAIT:
        return "SHORT_WAIT"
    if queue_length < QUEUE_LONG_WAIT:
        return "MEDIUM_WAIT"
    return "LONG_WAIT"


def normalize(metrics: dict, capacity: int) -> NormalizedMetrics:
    """Build canonical values from the raw metric dict produced by the telemetry parser."""
    occupancy = parse_count("occupancy", metrics.get("occupancy"))
    in_count = parse_count("incount", metrics.get("incount"))
    avg_dwell = seconds_to_minutes(parse_number("avg_dwell", metrics.get("avg_dwell")))
    max_dwell = seconds_to_minutes(parse_number("max_dwell", metrics.get("max_dwell")))
    estimated = seconds_to_minutes(parse_number("estimate_wait_time", metrics.get("estimate_wait_time")))
    manual = seconds_to_minutes(parse_number("waiting_time_min", metrics.get("waiting_time_min")))

    queue_length = estimate_queue_length(representative_duration(avg_dwell, estimated, manual), occupancy)
    percentage = occupancy_percentage(occupancy, capacity)

    return NormalizedMetrics(
        current_occupancy=occupancy,
        in_count=in_count,
        avg_dwell_time=avg_dwell,
        max_dwell_time=max_dwell,
        estimated_wait_time=estimated,
        manual_wait_time=manual,
        capacity=capacity,
        occupancy_percentage=percentage,
        queue_length=queue_length,
        congestion_level=classify_congestion(percentage),
        service_status=classify_service_status(queue_length),
    )


# ── Queue-snapshot scheme ────────────────────────────────────────────────────

def parse_wait_text(text: Optional[str]) -> float:
    """
    Free-text wait time from the queue display.
    "" / "Ready" / "No wait" → 0, "5-10 mins" → 7.5, "15 Mins" → 15, anything else → 0.
    """
    if not text or not text.strip():
        return 0.0
    lowered = text.strip().lower()
    if "ready" in lowered or "no wait" in lowered:
        return 0.0
    match = _RANGE_RE.search(lowered)
    if match:
        return (float(match.group(1)) + float(match.group(2))) / 2
    match = _NUMBER_RE.search(lowered)
    if match:
        return float(match.group(0))
    logger.debug(f"[QUEUE] Unrecognised wait text {text!r}, treating as 0")
    return 0.0


def classify_snapshot_service_status(queue_count: int, wait_minutes: float) -> str:
    if queue_count == 0 and wait_minutes == 0:
        return "READY_TO_SERVE"
    if wait_minutes <= SNAPSHOT_SHORT_WAIT_MAX:
        return "SHORT_WAIT"
    if wait_minutes <= SNAPSHOT_MEDIUM_WAIT_MAX:
        return "MEDIUM_WAIT"
    return "LONG_WAIT"


def classify_snapshot_alert(queue_count: int, wait_minutes: float) -> str:
    if queue_count > SNAPSHOT_CRITICAL_ABOVE or wait_minutes > SNAPSHOT_CRITICAL_ABOVE:
        return "CRITICAL"
    if queue_count > SNAPSHOT_WARNING_ABOVE or wait_minutes > SNAPSHOT_WARNING_ABOVE:
        return "WARNING"
    return "NORMAL"
