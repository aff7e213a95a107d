# cafeteria_analytics/main.py
"""
FastAPI application for the cafeteria occupancy service.

Lifespan starts and stops the background workers in order:
  live broadcaster → MQTT subscriber → report scheduler
Device-facing endpoints (ingest webhook, queue displays, health) stay open when
API_KEY is set; everything else needs the X-API-Key header or ?api_key=.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cafeteria_analytics.config import settings
from cafeteria_analytics.database import create_tables
from cafeteria_analytics.exceptions import LocationNotFound, TelemetryError
from cafeteria_analytics.routers import analytics, health, live, queue, reports, telemetry
from cafeteria_analytics.services.live_broadcaster import broadcaster
from cafeteria_analytics.services.mqtt_subscriber import MqttSubscriber
from cafeteria_analytics.services.report_driver import start_report_scheduler
from cafeteria_analytics.utils.logger import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v1"
OPEN_PATHS = frozenset({
    f"{API_PREFIX}/telemetry/ingest",
    f"{API_PREFIX}/queue",
    f"{API_PREFIX}/health",
    "/docs", "/redoc", "/openapi.json",
})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Cafeteria Analytics starting up...")
    create_tables()
    logger.info("✅ Database tables ready")

    await broadcaster.start()

    app.state.mqtt = None
    if settings.MQTT_ENABLED:
        app.state.mqtt = MqttSubscriber(broadcaster=broadcaster)
        app.state.mqtt.start(asyncio.get_running_loop())
        logger.info(f"📡 MQTT topics: {settings.MQTT_TOPICS}")
    else:
        logger.info("MQTT disabled, HTTP ingest only")

    app.state.report_tasks = start_report_scheduler()
    logger.info(f"🌐 Serving on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT} (docs at /docs)")

    yield

    logger.info("🛑 Cafeteria Analytics shutting down...")
    if app.state.mqtt is not None:
        app.state.mqtt.stop()
    for task in app.state.report_tasks:
        task.cancel()
    await broadcaster.stop()


app = FastAPI(
    title="Cafeteria Occupancy Analytics API",
    description="Food-counter telemetry ingestion, live updates and dashboard analytics.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Dashboard origin only, in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Rejects dashboard calls without the configured key. Counters and queue displays never send one."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in OPEN_PATHS:
            return await call_next(request)
        supplied = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if supplied != settings.API_KEY:
            logger.warning(f"[AUTH] Rejected {request.method} {request.url.path} from "
                           f"{request.client.host if request.client else '?'}")
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED,
                                content={"detail": "Invalid or missing API key"})
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


@app.middleware("http")
async def time_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


@app.exception_handler(LocationNotFound)
async def location_not_found(request: Request, exc: LocationNotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(TelemetryError)
async def telemetry_error(request: Request, exc: TelemetryError):
    logger.error(f"[API] {type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                        content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"detail": "Internal server error"})


for module, tag in (
    (telemetry, "📡 Telemetry"),
    (analytics, "📊 Analytics"),
    (queue, "🧾 Queue Displays"),
    (live, "🔴 Live"),
    (reports, "📧 Reports"),
    (health, "💚 Health"),
):
    app.include_router(module.router, prefix=API_PREFIX, tags=[tag])
