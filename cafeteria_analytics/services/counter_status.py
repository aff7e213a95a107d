# cafeteria_analytics/services/counter_status.py
"""
Current state of a location built from the newest record of each counter.
Used for the live WebSocket snapshot and the dashboard status cards.
"""

from cafeteria_analytics.config import settings
from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation
from cafeteria_analytics.models.telemetry_record import TelemetryRecord
from cafeteria_analytics.schemas.telemetry import CounterStatus, LiveCounterUpdate, OccupancyStatus
from cafeteria_analytics.services.metric_normalizer import classify_congestion
from cafeteria_analytics.services.telemetry_store import TelemetryStore
from cafeteria_analytics.utils.clock import now_local


def location_capacity(location: CafeteriaLocation) -> int:
    return location.capacity if location.capacity else settings.DEFAULT_CAPACITY


def wait_time_of(record: TelemetryRecord) -> float:
    """Displayed wait: estimated → manual → avg dwell, else 0."""
    for value in (record.estimated_wait_time, record.manual_wait_time, record.avg_dwell_time):
        if value:
            return value
    return 0.0


def counter_status_list(latest: list[TelemetryRecord], names: dict[int, str]) -> list[CounterStatus]:
    return [
        CounterStatus(
            counter_name=names.get(r.counter_id, f"Counter {r.counter_id}"),
            queue_length=r.queue_length or 0,
            wait_time=wait_time_of(r),
            congestion_level=r.congestion_level or "LOW",
            service_status=r.service_status or "UNKNOWN",
            last_updated=r.timestamp,
        )
        for r in latest
    ]


def occupancy_status_of(location: CafeteriaLocation, latest: list[TelemetryRecord]) -> OccupancyStatus:
    """Sum of the latest counter occupancies against the location capacity."""
    total = sum(r.current_occupancy or 0 for r in latest)
    capacity = location_capacity(location)
    percentage = total * 100.0 / capacity if capacity > 0 else 0.0
    return OccupancyStatus(
        current_occupancy=total,
        capacity=capacity,
        occupancy_percentage=round(percentage, 2),
        congestion_level=classify_congestion(percentage),
        timestamp=now_local(),
    )


def build_live_update(location: CafeteriaLocation, store: TelemetryStore,
                      counter_update: bool = True) -> LiveCounterUpdate:
    latest = store.find_latest_per_counter(location.id)
    names = store.counter_names(location.id)
    return LiveCounterUpdate(
        cafeteria_code=location.code,
        counters=counter_status_list(latest, names),
        occupancy_status=occupancy_status_of(location, latest),
        update_type="counter_update" if counter_update else "occupancy_update",
        timestamp=now_local(),
    )
