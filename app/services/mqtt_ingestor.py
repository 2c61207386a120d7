"""
Optional MQTT subscriber feeding the raw reading store.

Devices publish JSON on ``{MQTT_TOPIC_ROOT}/{serial_number}/telemetry``:

    {"timestamp": "2025-01-10T10:02:00Z", "data": {"OFR": 120.5, "WFR": 30.2},
     "longitude": 3.1, "latitude": 56.2}

A bare tag/value object is accepted as well. Started from the FastAPI
lifespan when ``MQTT_ENABLED`` is set.
"""
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import paho.mqtt.client as mqtt
from sqlalchemy.orm import Session

from app.core.clock import to_naive_utc
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.device import Device
from app.services.reading_store import record_reading

logger = logging.getLogger(__name__)

TELEMETRY_SUFFIX = "telemetry"

_mqtt_client: Optional[mqtt.Client] = None


def parse_topic(topic: str) -> Optional[str]:
    """Serial number from ``<root>/<serial>/telemetry``, else None."""
    root = settings.MQTT_TOPIC_ROOT.rstrip("/")
    if not topic.startswith(root + "/"):
        return None
    parts = topic[len(root) + 1:].split("/")
    if len(parts) != 2 or parts[1] != TELEMETRY_SUFFIX or not parts[0]:
        return None
    return parts[0]


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    return to_naive_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def parse_payload(raw: bytes) -> Tuple[Dict[str, Any], Optional[datetime], Optional[float], Optional[float]]:
    body = json.loads(raw.decode("utf-8"))
    if not isinstance(body, dict):
        raise ValueError("payload must be a JSON object")

    if isinstance(body.get("data"), dict):
        data = body["data"]
    else:
        data = {k: v for k, v in body.items() if k not in ("timestamp", "longitude", "latitude")}

    return data, _parse_timestamp(body.get("timestamp")), body.get("longitude"), body.get("latitude")


def ingest_message(db: Session, topic: str, raw: bytes) -> bool:
    """Store one telemetry message. Returns False when it was ignored."""
    serial = parse_topic(topic)
    if serial is None:
        return False

    device = db.query(Device).filter(Device.serial_number == serial).first()
    if not device:
        logger.debug("No device registered for serial %s", serial)
        return False

    try:
        data, timestamp, longitude, latitude = parse_payload(raw)
    except (ValueError, OverflowError, OSError) as exc:
        logger.warning("Discarding malformed payload on %s: %s", topic, exc)
        return False

    record_reading(db, device, data, timestamp=timestamp, longitude=longitude, latitude=latitude)
    return True


# ========= MQTT callbacks =========

def _on_connect(client: mqtt.Client, userdata, flags, reason_code, properties=None):
    if reason_code == 0:
        topic = f"{settings.MQTT_TOPIC_ROOT.rstrip('/')}/+/{TELEMETRY_SUFFIX}"
        client.subscribe(topic)
        logger.info("Connected to broker, subscribed to %s", topic)
    else:
        logger.error("Broker connection failed: %s", reason_code)


def _on_message(client: mqtt.Client, userdata, msg: mqtt.MQTTMessage):
    db = SessionLocal()
    try:
        ingest_message(db, msg.topic, msg.payload)
    except Exception:
        db.rollback()
        logger.exception("Failed to process message on %s", msg.topic)
    finally:
        db.close()


def start_mqtt_ingestor():
    """
    Create the MQTT client, connect and run its loop in a daemon thread.
    Called once from the application lifespan.
    """
    global _mqtt_client
    if _mqtt_client is not None:
        return

    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id="flow-telemetry-ingestor",
        clean_session=True,
    )
    if settings.MQTT_USERNAME:
        client.username_pw_set(settings.MQTT_USERNAME, settings.MQTT_PASSWORD or "")

    client.on_connect = _on_connect
    client.on_message = _on_message

    logger.info("Connecting to %s:%s ...", settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT)
    client.connect(settings.MQTT_BROKER_HOST, settings.MQTT_BROKER_PORT, keepalive=60)

    thread = threading.Thread(target=client.loop_forever, daemon=True)
    thread.start()

    _mqtt_client = client
    logger.info("MQTT ingestor running in background thread")


def stop_mqtt_ingestor():
    global _mqtt_client
    if _mqtt_client is None:
        return
    _mqtt_client.disconnect()
    _mqtt_client = None
