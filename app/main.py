import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import alarms, auth, charts, devices, hierarchy, readings, widgets
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import configure_logging
from app.db.init_db import init_db
from app.services.mqtt_ingestor import start_mqtt_ingestor, stop_mqtt_ingestor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    init_db()
    if settings.MQTT_ENABLED:
        start_mqtt_ingestor()
    logger.info("Application started")
    yield
    stop_mqtt_ingestor()


app = FastAPI(title="Flow Telemetry API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(hierarchy.router)
app.include_router(devices.router)
app.include_router(readings.router)
app.include_router(charts.router)
app.include_router(alarms.router)
app.include_router(widgets.router)


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}
