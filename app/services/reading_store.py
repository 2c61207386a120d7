import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.models.device import Device
from app.models.reading import DeviceData, DeviceLatest

logger = logging.getLogger(__name__)


def record_reading(
    db: Session,
    device: Device,
    data: Dict[str, Any],
    timestamp: Optional[datetime] = None,
    longitude: Optional[float] = None,
    latitude: Optional[float] = None,
    commit: bool = True,
) -> DeviceData:
    """Append a raw reading and refresh the device's latest projection.

    Readings may arrive out of order: the projection only moves forward,
    so an older reading never overwrites a newer one.
    """
    received_at = utcnow()
    timestamp = timestamp or received_at

    reading = DeviceData(
        device_id=device.id,
        serial_number=device.serial_number,
        created_at=timestamp,
        longitude=longitude,
        latitude=latitude,
        data=data,
    )
    db.add(reading)

    latest = (
        db.query(DeviceLatest)
        .filter(DeviceLatest.device_id == device.id)
        .with_for_update()
        .first()
    )
    if latest is None:
        db.add(DeviceLatest(
            device_id=device.id,
            serial_number=device.serial_number,
            updated_at=timestamp,
            received_at=received_at,
            longitude=longitude,
            latitude=latitude,
            data=data,
        ))
    elif timestamp >= latest.updated_at:
        latest.updated_at = timestamp
        latest.received_at = received_at
        latest.longitude = longitude
        latest.latitude = latitude
        latest.data = data
    else:
        logger.debug(
            "Out-of-order reading for %s at %s (latest is %s), projection kept",
            device.serial_number, timestamp, latest.updated_at,
        )

    db.flush()
    if commit:
        db.commit()
        db.refresh(reading)
    return reading


def readings_in_window(
    db: Session,
    device_ids: Iterable[int],
    start: datetime,
    end: datetime,
) -> List[DeviceData]:
    """Readings in ``[start, end]``. ``end`` is widened by ``CLOCK_SKEW_SECONDS``
    so stamps slightly ahead of the server clock still count."""
    device_ids = list(device_ids)
    if not device_ids:
        return []
    end = end + timedelta(seconds=settings.CLOCK_SKEW_SECONDS)
    return (
        db.query(DeviceData)
        .filter(
            DeviceData.device_id.in_(device_ids),
            DeviceData.created_at >= start,
            DeviceData.created_at <= end,
        )
        .order_by(DeviceData.created_at)
        .all()
    )


def latest_for_devices(db: Session, device_ids: Iterable[int]) -> Dict[int, DeviceLatest]:
    device_ids = list(device_ids)
    if not device_ids:
        return {}
    rows = db.query(DeviceLatest).filter(DeviceLatest.device_id.in_(device_ids)).all()
    return {row.device_id: row for row in rows}


def latest_reading(db: Session, device: Device) -> Optional[Dict[str, Any]]:
    """Current value of a device.

    Served from the projection; when the device has none, the most recent
    raw reading is used instead.
    """
    latest = db.get(DeviceLatest, device.id)
    if latest is not None:
        return {
            "timestamp": latest.updated_at,
            "received_at": latest.received_at,
            "data": latest.data or {},
            "longitude": latest.longitude,
            "latitude": latest.latitude,
        }

    raw = (
        db.query(DeviceData)
        .filter(DeviceData.device_id == device.id)
        .order_by(DeviceData.created_at.desc(), DeviceData.id.desc())
        .first()
    )
    if raw is None:
        return None
    return {
        "timestamp": raw.created_at,
        "received_at": raw.created_at,
        "data": raw.data or {},
        "longitude": raw.longitude,
        "latitude": raw.latitude,
    }


def device_history(db: Session, device_id: int, since: datetime, limit: int = 100) -> List[DeviceData]:
    return (
        db.query(DeviceData)
        .filter(DeviceData.device_id == device_id, DeviceData.created_at >= since)
        .order_by(DeviceData.created_at.desc())
        .limit(limit)
        .all()
    )


def recent_readings(db: Session, device_ids: Iterable[int], limit: int = 10) -> List[DeviceData]:
    device_ids = list(device_ids)
    if not device_ids:
        return []
    return (
        db.query(DeviceData)
        .filter(DeviceData.device_id.in_(device_ids))
        .order_by(DeviceData.created_at.desc())
        .limit(limit)
        .all()
    )
