# cafeteria_analytics/services/queue_snapshot_service.py
"""
Lightweight queue path.
Queue displays post a counter name, a head count and a free-text wait ("5-10 mins").
Status comes from the snapshot scheme in metric_normalizer, not the telemetry thresholds.
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cafeteria_analytics.models.cafeteria_location import CafeteriaLocation
from cafeteria_analytics.models.queue_snapshot import QueueSnapshot
from cafeteria_analytics.schemas.queue import QueueSnapshotIn
from cafeteria_analytics.services.metric_normalizer import (
    classify_snapshot_alert,
    classify_snapshot_service_status,
    parse_wait_text,
)
from cafeteria_analytics.utils.clock import now_local, to_local_naive
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)


async def record_queue_snapshot(data: QueueSnapshotIn, db: Session) -> QueueSnapshot:
    location_id = None
    if data.cafeteria_code:
        location = db.query(CafeteriaLocation).filter(CafeteriaLocation.code == data.cafeteria_code).first()
        if location:
            location_id = location.id
        else:
            logger.warning(f"[QUEUE] Unknown cafeteria '{data.cafeteria_code}', stored without location")

    queue_count = max(0, data.queue_count)
    wait_minutes = parse_wait_text(data.wait_time_text)
    snapshot = QueueSnapshot(
        counter_name=data.counter_name,
        queue_count=queue_count,
        wait_time_text=data.wait_time_text,
        wait_time_minutes=wait_minutes,
        service_status=classify_snapshot_service_status(queue_count, wait_minutes),
        status=classify_snapshot_alert(queue_count, wait_minutes),
        location_id=location_id,
        timestamp=to_local_naive(data.timestamp) if data.timestamp else now_local(),
    )
    db.add(snapshot)
    db.commit()
    db.refresh(snapshot)

    log = logger.warning if snapshot.status != "NORMAL" else logger.info
    log(f"[QUEUE] {snapshot.counter_name}: q={queue_count} wait={wait_minutes}min "
        f"→ {snapshot.service_status}/{snapshot.status}")
    return snapshot


def latest_snapshots(db: Session, location_id: Optional[int] = None) -> list[QueueSnapshot]:
    """Newest snapshot per counter name."""
    latest = db.query(
        QueueSnapshot.counter_name,
        func.max(QueueSnapshot.timestamp).label("max_ts"),
    )
    if location_id is not None:
        latest = latest.filter(QueueSnapshot.location_id == location_id)
    latest = latest.group_by(QueueSnapshot.counter_name).subquery()

    rows = (
        db.query(QueueSnapshot)
        .join(latest, (QueueSnapshot.counter_name == latest.c.counter_name)
              & (QueueSnapshot.timestamp == latest.c.max_ts))
        .order_by(QueueSnapshot.counter_name, QueueSnapshot.id.desc())
        .all()
    )
    seen, result = set(), []
    for row in rows:
        if row.counter_name not in seen:
            seen.add(row.counter_name)
            result.append(row)
    return result
