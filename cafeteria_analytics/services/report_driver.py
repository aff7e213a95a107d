# cafeteria_analytics/services/report_driver.py
"""
Scheduled report driver.

Daily  (18:00 by default): 24h dashboard per active location.
Weekly (Monday 09:00):     168h dashboard per active location.

Locations run one after another; a failure at one location is logged and the
batch moves on. Each batch uses its own DB session.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from cafeteria_analytics.config import settings
from cafeteria_analytics.database import SessionLocal
from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation
from cafeteria_analytics.services.aggregation_engine import AggregationEngine
from cafeteria_analytics.services.report_sender import ReportSender
from cafeteria_analytics.utils.clock import now_local
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

# cadence → (granularity, window hours)
CADENCES = {
    "daily": ("daily", 24),
    "weekly": ("weekly", 168),
}


@dataclass
class BatchSummary:
    cadence: str
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)


async def run_report_batch(cadence: str, session_factory: Callable = SessionLocal,
                           sender: Optional[ReportSender] = None,
                           now: Optional[datetime] = None) -> BatchSummary:
    if cadence not in CADENCES:
        raise ValueError(f"Unknown report cadence '{cadence}' (expected daily|weekly)")
    granularity, hours = CADENCES[cadence]
    sender = sender or ReportSender()
    summary = BatchSummary(cadence=cadence)

    db = session_factory()
    try:
        locations = (
            db.query(CafeteriaLocation)
            .filter(CafeteriaLocation.active.is_(True))
            .order_by(CafeteriaLocation.id)
            .all()
        )
        logger.info(f"[REPORT] 📊 {cadence} batch starting for {len(locations)} locations")
        engine = AggregationEngine(db)

        for location in locations:
            code = location.code
            try:
                report = engine.dashboard(code, granularity, hours, now=now)
                if await sender.send(cadence, report):
                    summary.sent += 1
                else:
                    summary.skipped += 1
            except Exception as e:
                # A failed query leaves the transaction aborted for the next location
                db.rollback()
                summary.failed += 1
                summary.errors[code] = str(e)
                logger.error(f"[REPORT] ❌ {cadence} report for {code} failed: {e}", exc_info=True)
    finally:
        db.close()

    logger.info(
        f"[REPORT] ✅ {cadence} batch done, sent={summary.sent} "
        f"failed={summary.failed} skipped={summary.skipped}"
    )
    return summary


def next_run_at(cadence: str, now: datetime) -> datetime:
    """Next scheduled time strictly after now (naive local)."""
    if cadence == "daily":
        run = now.replace(hour=settings.REPORT_DAILY_HOUR, minute=0, second=0, microsecond=0)
        return run if run > now else run + timedelta(days=1)

    run = now.replace(hour=settings.REPORT_WEEKLY_HOUR, minute=0, second=0, microsecond=0)
    run += timedelta(days=(settings.REPORT_WEEKLY_WEEKDAY - now.weekday()) % 7)
    return run if run > now else run + timedelta(days=7)


async def _schedule_loop(cadence: str):
    while True:
        now = now_local()
        run_at = next_run_at(cadence, now)
        logger.info(f"[REPORT] Next {cadence} report at {run_at:%Y-%m-%d %H:%M}")
        await asyncio.sleep((run_at - now).total_seconds())
        try:
            await run_report_batch(cadence)
        except Exception as e:
            logger.error(f"[REPORT] {cadence} batch crashed: {e}", exc_info=True)


def start_report_scheduler() -> list[asyncio.Task]:
    """
    Launch one scheduler task per cadence.
    Called once at backend startup; returns the tasks so shutdown can cancel them.
    """
    if not settings.REPORTS_ENABLED:
        logger.info("[REPORT] Scheduled reports disabled")
        return []
    return [
        asyncio.create_task(_schedule_loop(cadence), name=f"report-{cadence}")
        for cadence in CADENCES
    ]
