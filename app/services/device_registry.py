"""
Tenant-scoped device lookups.

Every lookup is filtered by the caller's company unless the caller is an
admin. Asking for a device that exists in another company raises
ForbiddenError rather than pretending it does not exist.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.core.clock import utcnow
from app.core.config import settings
from app.core.deps import TenantContext
from app.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from app.models.alarm import AlarmStatus, DeviceAlarm
from app.models.device import Device, DeviceType
from app.models.hierarchy import Hierarchy
from app.models.reading import DeviceLatest
from app.services import hierarchy_service, reading_store
from app.services.aggregator import latest_values

logger = logging.getLogger(__name__)

RESOLVED_STATUS = "Resolved"


def _base_query(db: Session):
    return db.query(Device).options(
        joinedload(Device.device_type),
        joinedload(Device.hierarchy),
        joinedload(Device.latest),
        joinedload(Device.company),
    )


def _check_tenant(ctx: TenantContext, device: Device) -> Device:
    if not ctx.is_admin and device.company_id != ctx.tenant_id:
        raise ForbiddenError("Device belongs to another company")
    return device


def device_by_id(db: Session, ctx: TenantContext, device_id: int) -> Device:
    device = _base_query(db).filter(Device.id == device_id).first()
    if not device:
        raise NotFoundError("Device", device_id)
    return _check_tenant(ctx, device)


def device_by_serial(db: Session, ctx: TenantContext, serial_number: str) -> Device:
    device = _base_query(db).filter(Device.serial_number == serial_number).first()
    if not device:
        raise NotFoundError("Device", serial_number)
    return _check_tenant(ctx, device)


def devices_for_tenant(db: Session, ctx: TenantContext, company_id: Optional[int] = None):
    """Query of devices visible to the caller (admins may narrow by company)."""
    q = _base_query(db)
    if not ctx.is_admin:
        q = q.filter(Device.company_id == ctx.tenant_id)
    elif company_id is not None:
        q = q.filter(Device.company_id == company_id)
    return q


def devices_for_subtree(db: Session, node_ids: Iterable[int], company_id: int) -> List[Device]:
    """Devices attached to any of ``node_ids`` that belong to ``company_id``."""
    node_ids = list(node_ids)
    if not node_ids:
        return []
    return (
        _base_query(db)
        .filter(Device.hierarchy_id.in_(node_ids), Device.company_id == company_id)
        .order_by(Device.serial_number)
        .all()
    )


def is_online(latest: Optional[DeviceLatest], now: Optional[datetime] = None) -> bool:
    if latest is None or latest.updated_at is None:
        return False
    now = now or utcnow()
    return latest.updated_at >= now - timedelta(minutes=settings.ONLINE_WINDOW_MINUTES)


def device_dict(device: Device, now: Optional[datetime] = None) -> Dict[str, Any]:
    latest = device.latest
    return {
        "id": device.id,
        "serial_number": device.serial_number,
        "type": device.type_name,
        "device_type_id": device.device_type_id,
        "logo": device.device_type.logo if device.device_type else None,
        "company_id": device.company_id,
        "company": device.company.name if device.company else None,
        "hierarchy_id": device.hierarchy_id,
        "hierarchy": device.hierarchy.name if device.hierarchy else None,
        "metadata": device.meta or {},
        "status": "online" if is_online(latest, now) else "offline",
        "last_update": latest.updated_at if latest else None,
        "created_at": device.created_at,
    }


def _flow_data(device: Device) -> Dict[str, float]:
    data = device.latest.data if device.latest else None
    return {k: v or 0.0 for k, v in latest_values(device.type_name, data).items()}


def _apply_filters(devices: List[Device], status: Optional[str], now: datetime) -> List[Device]:
    if status is None:
        return devices
    status = status.lower()
    if status not in ("online", "offline"):
        raise InvalidInputError("status must be 'online' or 'offline'", details={"status": status})
    want_online = status == "online"
    return [d for d in devices if is_online(d.latest, now) == want_online]


def _search(q, search: Optional[str], device_type: Optional[str]):
    if search:
        pattern = f"%{search}%"
        q = q.outerjoin(Hierarchy, Device.hierarchy_id == Hierarchy.id).filter(
            or_(Device.serial_number.ilike(pattern), Hierarchy.name.ilike(pattern))
        )
    if device_type:
        q = q.join(DeviceType, Device.device_type_id == DeviceType.id).filter(DeviceType.type_name == device_type)
    return q


def _open_alarm_count(db: Session, serials: List[str]) -> int:
    if not serials:
        return 0
    return (
        db.query(DeviceAlarm)
        .join(AlarmStatus, DeviceAlarm.status_id == AlarmStatus.id)
        .filter(DeviceAlarm.device_serial.in_(serials), AlarmStatus.name != RESOLVED_STATUS)
        .count()
    )


def _statistics(db: Session, devices: List[Device], now: datetime) -> Dict[str, int]:
    online = sum(1 for d in devices if is_online(d.latest, now))
    return {
        "total": len(devices),
        "online": online,
        "offline": len(devices) - online,
        "total_alarms": _open_alarm_count(db, [d.serial_number for d in devices]),
        "locations": len({d.hierarchy_id for d in devices if d.hierarchy_id is not None}),
    }


def list_devices(
    db: Session,
    ctx: TenantContext,
    company_id: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    device_type: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    now = utcnow()
    q = _search(devices_for_tenant(db, ctx, company_id), search, device_type)
    devices = _apply_filters(q.order_by(Device.serial_number).all(), status, now)

    total = len(devices)
    offset = (page - 1) * limit
    page_items = devices[offset:offset + limit]
    return {
        "devices": [dict(device_dict(d, now), flow_data=_flow_data(d)) for d in page_items],
        "statistics": _statistics(db, devices, now),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


def hierarchy_devices(
    db: Session,
    ctx: TenantContext,
    node_id: int,
    search: Optional[str] = None,
    status: Optional[str] = None,
    device_type: Optional[str] = None,
) -> Dict[str, Any]:
    node = hierarchy_service.get_node(db, ctx, node_id)
    node_ids = hierarchy_service.resolve_subtree(db, node.id, company_id=node.company_id)

    now = utcnow()
    q = _base_query(db).filter(Device.hierarchy_id.in_(node_ids), Device.company_id == node.company_id)
    q = _search(q, search, device_type)
    devices = _apply_filters(q.order_by(Device.serial_number).all(), status, now)

    return {
        "hierarchy": {"id": node.id, "name": node.name, "level": node.level_name},
        "devices": [dict(device_dict(d, now), flow_data=_flow_data(d)) for d in devices],
        "statistics": _statistics(db, devices, now),
    }


def device_detail(db: Session, ctx: TenantContext, device_id: int) -> Dict[str, Any]:
    device = device_by_id(db, ctx, device_id)
    since = utcnow() - timedelta(hours=24)
    history = reading_store.device_history(db, device.id, since, limit=100)
    return {
        "device": device_dict(device),
        "latest": reading_store.latest_reading(db, device),
        "history": [
            {"timestamp": r.created_at, "data": r.data, "longitude": r.longitude, "latitude": r.latitude}
            for r in history
        ],
    }


def update_metadata(db: Session, ctx: TenantContext, device_id: int, metadata: Dict[str, Any]) -> Device:
    device = device_by_id(db, ctx, device_id)
    device.meta = dict(metadata)
    db.commit()
    db.refresh(device)
    logger.info("Device %s metadata updated by user %s", device.serial_number, ctx.user_id)
    return device
