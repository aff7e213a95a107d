# cafeteria_analytics/models/tenant.py
"""
Tenants table: the organisations that own cafeteria locations.
Read-only from this service; rows are provisioned by scripts/setup/init_db.py.
"""

from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from cafeteria_analytics.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    locations = relationship("CafeteriaLocation", back_populates="tenant")

    def __repr__(self):
        return f"<Tenant {self.tenant_code} active={self.active}>"
