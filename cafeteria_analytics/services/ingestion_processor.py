# cafeteria_analytics/services/ingestion_processor.py
"""
Telemetry ingestion: parse → resolve owner → normalise → store → broadcast.

One call handles one inbound event inside one transaction. The live snapshot is
built and published only after commit; its failures never affect the stored record.

Drops (re-raised for the caller to log/count): MalformedPayload, NoResolvableOwner.
Fatal for the event: StoreUnavailable.
Duplicates are stored again; there is no dedup key.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafeteria_analytics.config import settings
from cafeteria_analytics.exceptions import MalformedPayload, NoResolvableOwner, StoreUnavailable
from cafeteria_analytics.models.telemetry_record import TelemetryRecord
from cafeteria_analytics.services.counter_status import build_live_update, location_capacity
from cafeteria_analytics.services.live_broadcaster import LiveBroadcaster, location_topic
from cafeteria_analytics.services.metric_normalizer import normalize
from cafeteria_analytics.services.owner_resolver import OwnerDirectory, OwnerResolver
from cafeteria_analytics.services.telemetry_parser import parse_telemetry
from cafeteria_analytics.services.telemetry_store import TelemetryStore
from cafeteria_analytics.utils.clock import now_local
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)


async def process_telemetry(topic: str, payload, db: Session,
                            broadcaster: Optional[LiveBroadcaster] = None,
                            counter_ref: Optional[str] = None) -> TelemetryRecord:
    try:
        raw = parse_telemetry(payload, topic)
    except MalformedPayload as e:
        logger.warning(f"[INGEST] Dropped event from '{topic}': {e}")
        raise

    resolver = OwnerResolver(OwnerDirectory(db), settings.DEFAULT_CAFETERIA_CODE)
    try:
        owner = resolver.resolve(counter_ref=raw.device_id or counter_ref,
                                 location_ref=raw.cafeteria_code)
    except NoResolvableOwner as e:
        logger.error(f"[INGEST] Dropped event from '{topic}': {e}")
        raise

    location = owner.location
    metrics = normalize(raw.metrics, location_capacity(location))

    record = TelemetryRecord(
        location_id=location.id,
        counter_id=owner.counter.id if owner.counter else None,
        timestamp=raw.timestamp,
        current_occupancy=metrics.current_occupancy,
        capacity=metrics.capacity,
        occupancy_percentage=metrics.occupancy_percentage,
        in_count=metrics.in_count,
        avg_dwell_time=metrics.avg_dwell_time,
        max_dwell_time=metrics.max_dwell_time,
        estimated_wait_time=metrics.estimated_wait_time,
        manual_wait_time=metrics.manual_wait_time,
        queue_length=metrics.queue_length,
        congestion_level=metrics.congestion_level,
        service_status=metrics.service_status,
        source_topic=topic,
        created_at=now_local(),
    )

    store = TelemetryStore(db)
    store.save(record)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[INGEST] Commit failed for '{topic}': {e}")
        raise StoreUnavailable(str(e)) from e

    owner_label = f"counter '{owner.counter.name}'" if owner.counter else "site-level"
    logger.info(
        f"[INGEST] 💾 Saved #{record.id} | {location.code} {owner_label} | "
        f"occ={record.current_occupancy} in={record.in_count} queue={record.queue_length} "
        f"{record.congestion_level}/{record.service_status} @ {record.timestamp:%Y-%m-%d %H:%M:%S}"
    )

    if broadcaster is not None:
        try:
            update = build_live_update(location, store, counter_update=owner.counter is not None)
            broadcaster.publish(location_topic(location.code), update.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"[LIVE] Snapshot for {location.code} failed: {e}", exc_info=True)

    return record
