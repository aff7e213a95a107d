# cafeteria_analytics/schemas/telemetry.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class TelemetryRecordOut(BaseModel):
    id: int
    location_id: int
    counter_id: Optional[int]
    timestamp: datetime
    current_occupancy: Optional[int]
    capacity: int
    occupancy_percentage: Optional[float]
    in_count: Optional[int]
    avg_dwell_time: Optional[float]
    max_dwell_time: Optional[float]
    estimated_wait_time: Optional[float]
    manual_wait_time: Optional[float]
    queue_length: Optional[int]
    congestion_level: Optional[str]
    service_status: Optional[str]
    source_topic: Optional[str] = None

    class Config:
        from_attributes = True


class CounterStatus(BaseModel):
    counter_name: str
    queue_length: int = 0
    wait_time: float = 0.0
    congestion_level: str = "LOW"
    service_status: str = "UNKNOWN"
    last_updated: Optional[datetime] = None


class OccupancyStatus(BaseModel):
    current_occupancy: int
    capacity: int
    occupancy_percentage: float
    congestion_level: str
    timestamp: Optional[datetime] = None


class LiveCounterUpdate(BaseModel):
    """Payload pushed to /api/v1/live/{code} subscribers after each stored record."""
    cafeteria_code: str
    counters: list[CounterStatus]
    occupancy_status: Optional[OccupancyStatus] = None
    update_type: str          # counter_update | occupancy_update
    timestamp: datetime
