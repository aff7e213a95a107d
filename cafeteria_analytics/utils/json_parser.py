# cafeteria_analytics/utils/json_parser.py
"""
Helpers for reading counter telemetry JSON.
Devices are inconsistent about types: numbers arrive as ints, floats or strings.
"""

import json
import math
from typing import Optional, Any

from cafeteria_analytics.exceptions import UnparseableMetric

# Status text some devices put in numeric wait fields instead of a number
_STATUS_WORDS = ("ready", "serve", "wait")


def safe_parse_json(raw_body: bytes) -> Optional[dict]:
    """Parse JSON bytes safely. Returns None on error or when the top level is not an object."""
    try:
        data = json.loads(raw_body.decode("utf-8", errors="replace"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def to_number(field: str, value: Any) -> Optional[float]:
    """
    Convert a raw field value to float.
    None and status text ("Ready to serve", "No wait") give None;
    any other non-numeric text raises UnparseableMetric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _finite(field, value, float(value))
        except OverflowError:
            raise UnparseableMetric(field, value)
    text = str(value).strip()
    if not text:
        return None
    lowered = text.lower()
    if any(word in lowered for word in _STATUS_WORDS):
        return None
    try:
        number = float(text)
    except ValueError:
        raise UnparseableMetric(field, value)
    return _finite(field, value, number)


def _finite(field: str, raw: Any, number: float) -> float:
    # NaN and infinities cannot become counts or minutes
    if not math.isfinite(number):
        raise UnparseableMetric(field, raw)
    return number
