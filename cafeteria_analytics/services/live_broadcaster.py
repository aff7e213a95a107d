# cafeteria_analytics/services/live_broadcaster.py
"""
Live-update hub for dashboard WebSockets.

publish() is fire-and-forget and safe to call from any thread (the MQTT network
thread included): it only enqueues onto the event loop. A single drain task sends
queued messages to the WebSocket subscribers of each topic ("cafeteria/<code>").
Delivery failures are logged and the dead socket is dropped.
"""

import asyncio
import json
from collections import defaultdict
from typing import Any, Optional

from cafeteria_analytics.exceptions import BroadcastFailure
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

_QUEUE_SIZE = 1000


def location_topic(code: str) -> str:
    return f"cafeteria/{code}"


class LiveBroadcaster:
    def __init__(self):
        self._subscribers: dict[str, set] = defaultdict(set)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────
    async def start(self):
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._task = asyncio.create_task(self._drain(), name="live-broadcaster")
        logger.info("[LIVE] Broadcaster started")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._loop = None
        self._queue = None
        logger.info("[LIVE] Broadcaster stopped")

    @property
    def running(self) -> bool:
        return self._task is not None

    # ── Subscriptions ─────────────────────────────────────────────────────
    def subscribe(self, topic: str, websocket):
        self._subscribers[topic].add(websocket)
        logger.info(f"[LIVE] Subscriber joined {topic} ({len(self._subscribers[topic])} total)")

    def unsubscribe(self, topic: str, websocket):
        subscribers = self._subscribers.get(topic)
        if not subscribers:
            return
        subscribers.discard(websocket)
        if not subscribers:
            del self._subscribers[topic]
        logger.info(f"[LIVE] Subscriber left {topic}")

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subscribers.get(topic, ()))
        return sum(len(s) for s in self._subscribers.values())

    # ── Publish ───────────────────────────────────────────────────────────
    def publish(self, topic: str, payload: Any):
        """Queue a message for delivery. Never blocks and never raises."""
        if self._loop is None or self._queue is None:
            logger.debug(f"[LIVE] Broadcaster not running, dropped update for {topic}")
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, topic, payload)
        except RuntimeError as e:
            # Loop already closed during shutdown
            logger.warning(f"[LIVE] Could not queue update for {topic}: {e}")

    def _enqueue(self, topic: str, payload: Any):
        try:
            self._queue.put_nowait((topic, payload))
        except asyncio.QueueFull:
            logger.warning(f"[LIVE] Queue full, dropped update for {topic}")

    async def _drain(self):
        while True:
            topic, payload = await self._queue.get()
            try:
                await self.deliver(topic, payload)
            except BroadcastFailure as e:
                logger.warning(f"[LIVE] {e}")
            finally:
                self._queue.task_done()

    async def deliver(self, topic: str, payload: Any):
        """Send one message to every subscriber of topic. Raises BroadcastFailure if any send failed."""
        subscribers = list(self._subscribers.get(topic, ()))
        if not subscribers:
            return
        message = json.dumps({"topic": topic, "data": payload}, default=str)

        failed = []
        for ws in subscribers:
            try:
                await ws.send_text(message)
            except Exception as e:
                logger.debug(f"[LIVE] send to subscriber of {topic} failed: {e}")
                failed.append(ws)

        for ws in failed:
            self.unsubscribe(topic, ws)
        if failed:
            raise BroadcastFailure(f"{len(failed)}/{len(subscribers)} subscribers of {topic} unreachable")


broadcaster = LiveBroadcaster()
