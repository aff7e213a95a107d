# cafeteria_analytics/models/queue_snapshot.py
"""
Queue snapshots table: the lightweight path.
Stores a counter's raw queue count and free-text wait time as reported,
plus the service/alert status derived from them.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, ForeignKey
from cafeteria_analytics.database import Base


class QueueSnapshot(Base):
    __tablename__ = "queue_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    counter_name = Column(String(200), nullable=False, index=True)
    queue_count = Column(Integer, default=0, nullable=False)
    wait_time_text = Column(String(100))
    wait_time_minutes = Column(Float, default=0.0, nullable=False)
    service_status = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)      # NORMAL | WARNING | CRITICAL
    location_id = Column(Integer, ForeignKey("cafeteria_locations.id"))
    timestamp = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<QueueSnapshot {self.counter_name} q={self.queue_count} status={self.status}>"
