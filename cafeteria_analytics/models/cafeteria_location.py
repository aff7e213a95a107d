# cafeteria_analytics/models/cafeteria_location.py
"""
Cafeteria locations table.
A location is a physical dining area with a seating capacity; counters belong to it
and site-level telemetry (no counter) is recorded against it.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from cafeteria_analytics.database import Base


class CafeteriaLocation(Base):
    __tablename__ = "cafeteria_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    code = Column(String(100), unique=True, nullable=False, index=True)
    floor = Column(String(50))
    zone = Column(String(100))
    capacity = Column(Integer)               # NULL → settings.DEFAULT_CAPACITY
    active = Column(Boolean, default=True, nullable=False)

    tenant = relationship("Tenant", back_populates="locations")
    counters = relationship("FoodCounter", back_populates="location")

    def __repr__(self):
        return f"<CafeteriaLocation {self.code} capacity={self.capacity}>"
