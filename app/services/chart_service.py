import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.deps import TenantContext
from app.core.exceptions import NotFoundError
from app.models.company import Company
from app.models.device import Device, DeviceType
from app.models.hierarchy import Hierarchy, HierarchyLevel
from app.services import aggregator, device_registry, hierarchy_service, reading_store
from app.services.time_buckets import resolve_time_range

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _shape(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    shaped = []
    for row in rows:
        out: Dict[str, Any] = {}
        for key, value in row.items():
            if key == "timestamp":
                out[key] = value
            elif key in ("data_points", "device_count"):
                out[key] = int(value or 0)
            else:
                out[key] = _as_float(value)
        shaped.append(out)
    return shaped


def get_device_chart(
    db: Session,
    ctx: TenantContext,
    device_id: int,
    time_range: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    device = device_registry.device_by_id(db, ctx, device_id)
    window = resolve_time_range(time_range, now or utcnow())

    series = _shape(aggregator.device_series(db, device, window))
    return {
        "device": device_registry.device_dict(device, window.end),
        "series": series,
        "latest": reading_store.latest_reading(db, device),
        "time_range": window.label,
        "total_data_points": sum(row["data_points"] for row in series),
    }


def get_hierarchy_chart(
    db: Session,
    ctx: TenantContext,
    node_id: int,
    time_range: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    node = hierarchy_service.get_node(db, ctx, node_id)
    window = resolve_time_range(time_range, now or utcnow())

    node_ids = hierarchy_service.resolve_subtree(db, node.id, company_id=node.company_id)
    devices = device_registry.devices_for_subtree(db, node_ids, node.company_id)
    logger.debug("Hierarchy %s: %d nodes, %d devices in subtree", node.id, len(node_ids), len(devices))

    series = _shape(aggregator.hierarchy_series(db, devices, window))
    return {
        "hierarchy": {
            "id": node.id,
            "name": node.name,
            "level": node.level_name,
            "level_order": node.level_order,
            "company_id": node.company_id,
        },
        "series": series,
        "devices": [
            {
                "id": d.id,
                "serial_number": d.serial_number,
                "type": d.type_name,
                "hierarchy_id": d.hierarchy_id,
            }
            for d in devices
        ],
        "time_range": window.label,
        "total_data_points": len(series),
        "total_devices": len(devices),
    }


def get_realtime(db: Session, ctx: TenantContext, device_id: int) -> Dict[str, Any]:
    device = device_registry.device_by_id(db, ctx, device_id)
    latest = reading_store.latest_reading(db, device)
    if latest is not None:
        latest["values"] = {
            k: _as_float(v) for k, v in aggregator.latest_values(device.type_name, latest["data"]).items()
        }
    return {"device": device_registry.device_dict(device), "latest": latest}


def company_dashboard(db: Session, ctx: TenantContext, company_id: Optional[int] = None) -> Dict[str, Any]:
    """Summary for one company: hierarchy/device breakdowns and recent readings."""
    scope = company_id if (ctx.is_admin and company_id is not None) else ctx.tenant_id
    company = db.get(Company, scope)
    if not company:
        raise NotFoundError("Company", scope)

    levels = (
        db.query(HierarchyLevel.name, HierarchyLevel.level_order, func.count(Hierarchy.id))
        .join(Hierarchy, Hierarchy.level_id == HierarchyLevel.id)
        .filter(Hierarchy.company_id == scope)
        .group_by(HierarchyLevel.name, HierarchyLevel.level_order)
        .order_by(HierarchyLevel.level_order)
        .all()
    )
    types = (
        db.query(DeviceType.type_name, DeviceType.logo, func.count(Device.id))
        .join(Device, Device.device_type_id == DeviceType.id)
        .filter(Device.company_id == scope)
        .group_by(DeviceType.type_name, DeviceType.logo)
        .order_by(DeviceType.type_name)
        .all()
    )

    device_ids = [row[0] for row in db.query(Device.id).filter(Device.company_id == scope).all()]
    recent = reading_store.recent_readings(db, device_ids, limit=10)

    return {
        "company": {"id": company.id, "name": company.name},
        "hierarchy": [{"level": name, "level_order": order, "count": count} for name, order, count in levels],
        "devices": [{"type": name, "logo": logo, "count": count} for name, logo, count in types],
        "recent_readings": [
            {"serial_number": r.serial_number, "timestamp": r.created_at, "data": r.data}
            for r in recent
        ],
        "totals": {
            "hierarchy_nodes": sum(count for _, _, count in levels),
            "devices": len(device_ids),
        },
    }
