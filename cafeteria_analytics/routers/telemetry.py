# cafeteria_analytics/routers/telemetry.py
"""
Telemetry ingest webhook + stored record viewer.
POST /telemetry/ingest: same payload as the MQTT topics, for devices that push over HTTP.
GET  /telemetry/records: lists stored records with optional filters.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cafeteria_analytics.database import get_db
from cafeteria_analytics.exceptions import MalformedPayload, NoResolvableOwner, StoreUnavailable
from cafeteria_analytics.schemas.telemetry import TelemetryRecordOut
from cafeteria_analytics.services.ingestion_processor import process_telemetry
from cafeteria_analytics.services.live_broadcaster import broadcaster
from cafeteria_analytics.services.telemetry_store import TelemetryStore
from cafeteria_analytics.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/telemetry/ingest", summary="Telemetry webhook: one counter reading")
async def ingest_telemetry(request: Request, device_id: Optional[str] = None,
                           topic: str = "http", db: Session = Depends(get_db)):
    """
    Always returns HTTP 200 with a status body: devices retry on non-200 and
    a dropped reading is better than a retry storm.
    """
    raw_body = await request.body()
    if not raw_body:
        return {"status": "ignored", "reason": "empty body"}

    logger.info(f"[INGEST] HTTP reading from {request.client.host if request.client else '?'} | {len(raw_body)} bytes")
    try:
        record = await process_telemetry(topic, raw_body, db, broadcaster=broadcaster, counter_ref=device_id)
    except MalformedPayload as e:
        return {"status": "dropped", "reason": "malformed", "detail": str(e)}
    except NoResolvableOwner as e:
        return {"status": "dropped", "reason": "no_owner", "detail": str(e)}
    except StoreUnavailable as e:
        return {"status": "error", "detail": str(e)}

    return {
        "status": "ok",
        "record_id": record.id,
        "location_id": record.location_id,
        "counter_id": record.counter_id,
        "congestion_level": record.congestion_level,
        "service_status": record.service_status,
    }


@router.get("/telemetry/records", response_model=list[TelemetryRecordOut], summary="List stored telemetry")
def list_records(limit: int = 50, location_id: Optional[int] = None, counter_id: Optional[int] = None,
                 db: Session = Depends(get_db)):
    """Newest first, with optional location_id and counter_id filters."""
    return TelemetryStore(db).find_recent(limit=limit, location_id=location_id, counter_id=counter_id)
