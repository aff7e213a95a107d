# scripts/setup/init_db.py
"""
Initialize database: creates all tables, optionally seeds a demo cafeteria.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from cafeteria_analytics.database import create_tables, engine, SessionLocal
from cafeteria_analytics.config import settings
from cafeteria_analytics.models import Tenant, CafeteriaLocation, FoodCounter
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

DEMO_COUNTERS = [
    # (name, code, device_id, counter_type)
    ("Healthy Station", "srr-4a-healthy", "HS-01", "healthy_station"),
    ("Mini Meals", "srr-4a-mini", "MM-01", "mini_meals"),
    ("Two Good", "srr-4a-twogood", "TG-01", "two_good"),
]


def seed_demo():
    """Insert one tenant, the default cafeteria and three counters (skips if present)."""
    db = SessionLocal()
    try:
        if db.query(CafeteriaLocation).filter(CafeteriaLocation.code == settings.DEFAULT_CAFETERIA_CODE).first():
            print(f"ℹ️  Cafeteria '{settings.DEFAULT_CAFETERIA_CODE}' already exists, skipping seed")
            return

        tenant = Tenant(tenant_code="demo", name="Demo Tenant", active=True)
        db.add(tenant)
        db.flush()

        location = CafeteriaLocation(
            tenant_id=tenant.id, name="SRR 4A Cafeteria", code=settings.DEFAULT_CAFETERIA_CODE,
            floor="4", zone="A", capacity=settings.DEFAULT_CAPACITY, active=True,
        )
        db.add(location)
        db.flush()

        for name, code, device_id, counter_type in DEMO_COUNTERS:
            db.add(FoodCounter(location_id=location.id, name=name, code=code,
                               device_id=device_id, counter_type=counter_type, active=True))
        db.commit()
        print(f"✅ Seeded cafeteria '{location.code}' with {len(DEMO_COUNTERS)} counters")
    finally:
        db.close()


def check_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError as e:
        print(f"❌ Database unreachable: {e.orig}")
        print("   Check DATABASE_URL in .env and that the server accepts connections.")
        return False
    print(f"✅ Connected ({engine.dialect.name})")
    return True


def main():
    parser = argparse.ArgumentParser(description="Create tables and optionally seed demo data")
    parser.add_argument("--seed", action="store_true", help="Insert a demo tenant, cafeteria and counters")
    args = parser.parse_args()

    print("🗄️  Cafeteria Analytics DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    if not check_connection():
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed:
        print("\n🌱 Seeding demo data...")
        seed_demo()

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn cafeteria_analytics.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
