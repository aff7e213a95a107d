# cafeteria_analytics/services/telemetry_store.py
"""
Append-only telemetry record store on top of a SQLAlchemy session.
save() only adds and flushes; the caller owns the transaction (commit/rollback).
Database errors surface as StoreUnavailable.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafeteria_analytics.exceptions import StoreUnavailable
from cafeteria_analytics.models.food_counter import FoodCounter
from cafeteria_analytics.models.telemetry_record import TelemetryRecord
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

SITE_LEVEL = "site"     # counter_id filter meaning "counter_id IS NULL"


class TelemetryStore:
    def __init__(self, db: Session):
        self.db = db

    def save(self, record: TelemetryRecord) -> TelemetryRecord:
        try:
            self.db.add(record)
            self.db.flush()       # assigns record.id inside the open transaction
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[INGEST] Store write failed: {e}")
            raise StoreUnavailable(str(e)) from e
        return record

    def find_by_owner_and_range(self, location_id: int, start: datetime, end: datetime,
                                counter_id=None, counter_level_only: bool = False) -> list[TelemetryRecord]:
        """
        Records for a location in [start, end], ordered by timestamp then id.
        counter_id: an id to restrict to one counter, SITE_LEVEL for site-level only, None for all.
        """
        try:
            q = self.db.query(TelemetryRecord).filter(
                TelemetryRecord.location_id == location_id,
                TelemetryRecord.timestamp >= start,
                TelemetryRecord.timestamp <= end,
            )
            if counter_id == SITE_LEVEL:
                q = q.filter(TelemetryRecord.counter_id.is_(None))
            elif counter_id is not None:
                q = q.filter(TelemetryRecord.counter_id == counter_id)
            elif counter_level_only:
                q = q.filter(TelemetryRecord.counter_id.isnot(None))
            return q.order_by(TelemetryRecord.timestamp, TelemetryRecord.id).all()
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

    def find_latest_per_counter(self, location_id: int) -> list[TelemetryRecord]:
        """Newest record of each counter in the location (site-level records excluded)."""
        try:
            latest = (
                self.db.query(
                    TelemetryRecord.counter_id,
                    func.max(TelemetryRecord.timestamp).label("max_ts"),
                )
                .filter(TelemetryRecord.location_id == location_id,
                        TelemetryRecord.counter_id.isnot(None))
                .group_by(TelemetryRecord.counter_id)
                .subquery()
            )
            rows = (
                self.db.query(TelemetryRecord)
                .join(latest, (TelemetryRecord.counter_id == latest.c.counter_id)
                      & (TelemetryRecord.timestamp == latest.c.max_ts))
                .order_by(TelemetryRecord.counter_id, TelemetryRecord.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e

        # Two records can share a timestamp; keep the newest id per counter
        seen, result = set(), []
        for row in rows:
            if row.counter_id not in seen:
                seen.add(row.counter_id)
                result.append(row)
        return result

    def find_recent(self, limit: int = 50, location_id: Optional[int] = None,
                    counter_id: Optional[int] = None) -> list[TelemetryRecord]:
        q = self.db.query(TelemetryRecord)
        if location_id is not None:
            q = q.filter(TelemetryRecord.location_id == location_id)
        if counter_id is not None:
            q = q.filter(TelemetryRecord.counter_id == counter_id)
        return q.order_by(TelemetryRecord.timestamp.desc(), TelemetryRecord.id.desc()).limit(limit).all()

    def counter_names(self, location_id: int) -> dict[int, str]:
        rows = self.db.query(FoodCounter).filter(FoodCounter.location_id == location_id).all()
        return {c.id: c.name for c in rows}
