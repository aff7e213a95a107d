# cafeteria_analytics/routers/queue.py
"""Lightweight queue displays: post a head count and a free-text wait time."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cafeteria_analytics.database import get_db
from cafeteria_analytics.schemas.queue import QueueSnapshotIn, QueueSnapshotOut
from cafeteria_analytics.services.queue_snapshot_service import latest_snapshots, record_queue_snapshot

router = APIRouter()


@router.post("/queue", response_model=QueueSnapshotOut, summary="Record a queue snapshot")
async def post_queue_snapshot(body: QueueSnapshotIn, db: Session = Depends(get_db)):
    return await record_queue_snapshot(body, db)


@router.get("/queue", response_model=list[QueueSnapshotOut], summary="Latest snapshot per counter")
def get_latest_queue(location_id: Optional[int] = None, db: Session = Depends(get_db)):
    return latest_snapshots(db, location_id)
