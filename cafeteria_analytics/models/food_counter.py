# cafeteria_analytics/models/food_counter.py
"""
Food counters table.
Each counter carries the device_id its sensor publishes under; the owner resolver
matches inbound telemetry on that column.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from cafeteria_analytics.database import Base


class FoodCounter(Base):
    __tablename__ = "food_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, ForeignKey("cafeteria_locations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    code = Column(String(100), unique=True, nullable=False)
    device_id = Column(String(100), unique=True, index=True)
    counter_type = Column(String(50))        # e.g. healthy | mini_meals | two_good
    active = Column(Boolean, default=True, nullable=False)

    location = relationship("CafeteriaLocation", back_populates="counters")

    def __repr__(self):
        return f"<FoodCounter {self.code} device={self.device_id}>"
