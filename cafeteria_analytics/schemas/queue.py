# cafeteria_analytics/schemas/queue.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class QueueSnapshotIn(BaseModel):
    counter_name: str
    queue_count: int = 0
    wait_time_text: Optional[str] = None
    cafeteria_code: Optional[str] = None
    timestamp: Optional[datetime] = None


class QueueSnapshotOut(BaseModel):
    id: int
    counter_name: str
    queue_count: int
    wait_time_text: Optional[str]
    wait_time_minutes: float
    service_status: str
    status: str
    location_id: Optional[int]
    timestamp: datetime

    class Config:
        from_attributes = True
