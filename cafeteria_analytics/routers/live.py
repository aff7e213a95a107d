# cafeteria_analytics/routers/live.py
"""
Live counter updates over WebSocket.
WS /live/{code}: receives a LiveCounterUpdate after every stored reading for that cafeteria.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cafeteria_analytics.services.live_broadcaster import broadcaster, location_topic
from cafeteria_analytics.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.websocket("/live/{code}")
async def live_updates(websocket: WebSocket, code: str):
    await websocket.accept()
    topic = location_topic(code)
    broadcaster.subscribe(topic, websocket)
    try:
        # Client messages are ignored; the loop only detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(topic, websocket)
