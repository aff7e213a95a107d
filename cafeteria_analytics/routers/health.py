# cafeteria_analytics/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + MQTT broker connection + live subscribers.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import text
from cafeteria_analytics.database import get_db
from cafeteria_analytics.config import settings
from cafeteria_analytics.services.live_broadcaster import broadcaster
from cafeteria_analytics.utils.clock import now_local

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - MQTT connection state and message counters
    - Live WebSocket subscriber count
    """
    result = {
        "status": "ok",
        "timestamp": now_local().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "mqtt": {"enabled": settings.MQTT_ENABLED},
        "live_subscribers": broadcaster.subscriber_count(),
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    subscriber = getattr(request.app.state, "mqtt", None)
    if settings.MQTT_ENABLED:
        connected = bool(subscriber and subscriber.connected)
        result["mqtt"]["connected"] = connected
        result["mqtt"]["broker"] = f"{settings.MQTT_HOST}:{settings.MQTT_PORT}"
        if subscriber:
            result["mqtt"]["stats"] = dict(subscriber.stats)
        if not connected:
            result["status"] = "degraded"

    return result
