# tests/conftest.py
"""Shared fixtures: an in-memory SQLite database and a seeded cafeteria."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before cafeteria_analytics.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("MQTT_ENABLED", "false")
os.environ.setdefault("REPORTS_ENABLED", "false")
os.environ.setdefault("DEFAULT_CAFETERIA_CODE", "srr-4a")
os.environ.setdefault("LOG_TO_FILE", "false")

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafeteria_analytics.database import Base
from cafeteria_analytics.models import Tenant, CafeteriaLocation, FoodCounter


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def cafeteria(db):
    """Tenant → cafeteria 'srr-4a' (capacity 20) → counters C (device C-01) and D (device D-01)."""
    tenant = Tenant(tenant_code="acme", name="Acme", active=True)
    db.add(tenant)
    db.flush()
    location = CafeteriaLocation(tenant_id=tenant.id, name="SRR 4A", code="srr-4a",
                                 capacity=20, active=True)
    db.add(location)
    db.flush()
    counter_c = FoodCounter(location_id=location.id, name="Counter C", code="c",
                            device_id="C-01", active=True)
    counter_d = FoodCounter(location_id=location.id, name="Counter D", code="d",
                            device_id="D-01", active=True)
    db.add_all([counter_c, counter_d])
    db.commit()
    return SimpleNamespace(tenant=tenant, location=location, counter=counter_c, other=counter_d)
