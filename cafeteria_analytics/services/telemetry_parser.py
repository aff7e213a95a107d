# cafeteria_analytics/services/telemetry_parser.py
"""
Parses counter telemetry payloads (MQTT messages and the HTTP ingest webhook).
Returns a unified RawTelemetry regardless of which device generation sent it.

Older sensors publish plain field names ("occupancy", "avg_dwell"); newer ones
prefix every metric with the counter family ("two_good_occupancy",
"healthy_station_avg_dwell", ...). Both are accepted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from cafeteria_analytics.exceptions import MalformedPayload
from cafeteria_analytics.utils.clock import now_local, to_local_naive
from cafeteria_analytics.utils.json_parser import safe_parse_json
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

COUNTER_PREFIXES = ("two_good", "mini_meals", "healthy_station")

# Base metric names as published by the devices
METRIC_FIELDS = (
    "occupancy",
    "avg_dwell",
    "max_dwell",
    "incount",
    "estimate_wait_time",
    "waiting_time_min",
)

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class RawTelemetry:
    timestamp: datetime
    device_id: Optional[str] = None
    cafeteria_code: Optional[str] = None
    # Raw metric values keyed by base name, exactly as sent (numbers or text)
    metrics: dict[str, Any] = field(default_factory=dict)
    timestamp_from_payload: bool = False


def lookup_metric(data: dict, name: str) -> Any:
    """Base name first, then each counter-family prefix."""
    if data.get(name) is not None:
        return data[name]
    for prefix in COUNTER_PREFIXES:
        value = data.get(f"{prefix}_{name}")
        if value is not None:
            return value
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    ISO-8601 ("2024-01-17T14:30:00") or "2024-01-17 14:30:00", treated as local time.
    Aware timestamps are converted to the local zone. Returns None if unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return to_local_naive(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, _TIMESTAMP_FORMAT)
    except ValueError:
        return None


def parse_telemetry(raw_body, topic: str = "") -> RawTelemetry:
    """Decode a JSON payload (bytes or str). Raises MalformedPayload if it is not a JSON object."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")
    if not raw_body or not raw_body.strip():
        raise MalformedPayload(f"Empty payload on '{topic}'")

    data = safe_parse_json(raw_body)
    if data is None:
        raise MalformedPayload(f"Payload on '{topic}' is not a JSON object")

    timestamp = parse_timestamp(data.get("timestamp"))
    from_payload = timestamp is not None
    if not from_payload:
        if data.get("timestamp"):
            logger.warning(f"[INGEST] Unparseable timestamp {data.get('timestamp')!r}, using ingestion time")
        timestamp = now_local()

    device_id = data.get("deviceId")
    cafeteria_code = data.get("cafeteriaCode")

    return RawTelemetry(
        timestamp=timestamp,
        device_id=str(device_id) if device_id not in (None, "") else None,
        cafeteria_code=str(cafeteria_code) if cafeteria_code not in (None, "") else None,
        metrics={name: lookup_metric(data, name) for name in METRIC_FIELDS},
        timestamp_from_payload=from_payload,
    )
