# cafeteria_analytics/models/telemetry_record.py
"""
Telemetry records table: one row per accepted occupancy/queue event.
Append-only: the ingestion path only inserts, aggregations only read.
counter_id NULL marks a site-level record for the whole location.
Durations are stored in minutes.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from cafeteria_analytics.database import Base


class TelemetryRecord(Base):
    __tablename__ = "telemetry_records"
    __table_args__ = (
        Index("ix_telemetry_location_ts", "location_id", "timestamp"),
        Index("ix_telemetry_counter_ts", "counter_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey("cafeteria_locations.id"), nullable=False)
    counter_id = Column(Integer, ForeignKey("food_counters.id"))
    timestamp = Column(DateTime, nullable=False, index=True)

    current_occupancy = Column(Integer)
    capacity = Column(Integer, nullable=False)
    occupancy_percentage = Column(Float)
    in_count = Column(Integer)               # cumulative device counter

    avg_dwell_time = Column(Float)
    max_dwell_time = Column(Float)
    estimated_wait_time = Column(Float)
    manual_wait_time = Column(Float)

    queue_length = Column(Integer)
    congestion_level = Column(String(20))    # LOW | MEDIUM | HIGH
    service_status = Column(String(30))      # READY_TO_SERVE | SHORT_WAIT | MEDIUM_WAIT | LONG_WAIT

    source_topic = Column(String(200))
    created_at = Column(DateTime)

    location = relationship("CafeteriaLocation")
    counter = relationship("FoodCounter")

    def __repr__(self):
        return (
            f"<TelemetryRecord {self.id} loc={self.location_id} "
            f"counter={self.counter_id} occ={self.current_occupancy}>"
        )
