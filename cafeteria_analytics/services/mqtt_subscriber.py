# cafeteria_analytics/services/mqtt_subscriber.py
"""
MQTT subscriber: pulls counter telemetry from the broker.

paho-mqtt runs its network loop on its own thread. Each message is handed to the
asyncio loop with run_coroutine_threadsafe and processed with a fresh DB session,
so one message = one transaction. paho reconnects on its own (1s → 60s backoff).

Topics without a deviceId in the payload can be mapped to a counter with
MQTT_TOPIC_DEVICE_MAP, e.g. {"cafeteria/srr-4a/healthy": "HS-01"}.
"""

import asyncio
import ssl
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from cafeteria_analytics.config import settings
from cafeteria_analytics.database import SessionLocal
from cafeteria_analytics.exceptions import MalformedPayload, NoResolvableOwner, StoreUnavailable
from cafeteria_analytics.services.ingestion_processor import process_telemetry
from cafeteria_analytics.services.live_broadcaster import LiveBroadcaster
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

_MIN_BACKOFF = 1
_MAX_BACKOFF = 60


class MqttSubscriber:
    def __init__(self, broadcaster: Optional[LiveBroadcaster] = None,
                 session_factory: Callable = SessionLocal,
                 topics: Optional[list[str]] = None,
                 topic_device_map: Optional[dict[str, str]] = None):
        self.broadcaster = broadcaster
        self.session_factory = session_factory
        self.topics = topics if topics is not None else list(settings.MQTT_TOPICS)
        self.topic_device_map = topic_device_map if topic_device_map is not None else dict(settings.MQTT_TOPIC_DEVICE_MAP)
        self.connected = False
        self.stats = {"received": 0, "stored": 0, "dropped": 0, "failed": 0}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._client: Optional[mqtt.Client] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────
    def start(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        client = mqtt.Client(
            client_id=settings.MQTT_CLIENT_ID,
            protocol=mqtt.MQTTv5,
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        if settings.MQTT_USERNAME:
            client.username_pw_set(settings.MQTT_USERNAME, settings.MQTT_PASSWORD)
        if settings.MQTT_TLS:
            client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
        client.reconnect_delay_set(min_delay=_MIN_BACKOFF, max_delay=_MAX_BACKOFF)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        logger.info(f"[MQTT] 📡 Connecting to {settings.MQTT_HOST}:{settings.MQTT_PORT}")
        # connect_async: startup does not fail if the broker is down, the loop keeps retrying
        client.connect_async(settings.MQTT_HOST, settings.MQTT_PORT, keepalive=settings.MQTT_KEEPALIVE)
        client.loop_start()
        self._client = client

    def stop(self):
        if self._client is None:
            return
        self._client.loop_stop()
        self._client.disconnect()
        self._client = None
        self.connected = False
        logger.info("[MQTT] Disconnected")

    # ── paho callbacks (network thread) ───────────────────────────────────
    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            self.connected = False
            logger.error(f"[MQTT] ❌ Connect refused: {reason_code}")
            return
        self.connected = True
        for topic in self.topics:
            client.subscribe(topic, qos=settings.MQTT_QOS)
        logger.info(f"[MQTT] ✅ Connected, subscribed to {self.topics}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self.connected = False
        logger.warning(f"[MQTT] ⚠️  Disconnected ({reason_code}), reconnecting")

    def _on_message(self, client, userdata, msg):
        self.stats["received"] += 1
        if self._loop is None or self._loop.is_closed():
            logger.warning(f"[MQTT] Event loop unavailable, dropped message on '{msg.topic}'")
            return
        asyncio.run_coroutine_threadsafe(self.handle(msg.topic, msg.payload), self._loop)

    # ── Processing (event loop) ───────────────────────────────────────────
    async def handle(self, topic: str, payload: bytes):
        """Process one message with its own session. Never raises."""
        db = self.session_factory()
        try:
            await process_telemetry(
                topic, payload, db,
                broadcaster=self.broadcaster,
                counter_ref=self.topic_device_map.get(topic),
            )
            self.stats["stored"] += 1
        except (MalformedPayload, NoResolvableOwner):
            self.stats["dropped"] += 1
        except StoreUnavailable as e:
            self.stats["failed"] += 1
            logger.error(f"[MQTT] ❌ Event from '{topic}' lost, store unavailable: {e}")
        except Exception as e:
            self.stats["failed"] += 1
            logger.error(f"[MQTT] Message handling error on '{topic}': {e}", exc_info=True)
        finally:
            db.close()
