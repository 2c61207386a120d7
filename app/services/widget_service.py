"""
Dashboard layouts and widget data.

Widget definitions form a shared catalog; dashboards belong to a company.
Anything that writes more than one row (create a widget and attach it,
re-arrange a layout) commits once at the end and rolls back on any error.
Widget data is always computed over devices the caller can see.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, joinedload

from app.core.clock import utcnow
from app.core.config import settings
from app.core.deps import TenantContext
from app.core.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.models.device import Device, DeviceDataMapping, DeviceType
from app.models.reading import DeviceData
from app.models.widget import Dashboard, DashboardLayout, WidgetDefinition, WidgetType
from app.services import device_registry, hierarchy_service, reading_store
from app.services.aggregator import numeric
from app.services.expressions import parse_expression, validate_expression
from app.services.time_buckets import widget_range_start

logger = logging.getLogger(__name__)

WIDGET_DISPLAY_NAMES = {
    "line_chart": "Line Chart",
    "kpi": "KPI Card",
    "donut_chart": "Donut Chart",
    "map": "Map",
}

CREATED_WIDGET_LAYOUT = {"x": 0, "y": 0, "w": 6, "h": 3, "minW": 3, "minH": 2, "static": False}
ATTACHED_WIDGET_LAYOUT = {"x": 0, "y": 0, "w": 4, "h": 2, "minW": 2, "minH": 1, "static": False}

# rows read per round trip when filling a widget series
FETCH_CHUNK = 500


# ---------- dashboards ----------

def active_dashboard(db: Session, company_id: int) -> Dashboard:
    dashboard = (
        db.query(Dashboard)
        .filter(Dashboard.company_id == company_id, Dashboard.is_active == True)  # noqa: E712
        .order_by(Dashboard.created_at)
        .first()
    )
    if not dashboard:
        raise NotFoundError("Dashboard", company_id)
    return dashboard


def layout_dict(layout: DashboardLayout) -> Dict[str, Any]:
    widget = layout.widget_definition
    widget_type = widget.widget_type if widget else None
    return {
        "layout_id": layout.id,
        "widget_id": layout.widget_definition_id,
        "name": widget.name if widget else None,
        "description": widget.description if widget else None,
        "widget_type": widget_type.name if widget_type else None,
        "component": widget_type.component_name if widget_type else None,
        "data_source_config": widget.data_source_config if widget else {},
        "layout_config": layout.layout_config,
        "instance_config": layout.instance_config or {},
        "display_order": layout.display_order,
    }


def user_dashboard(db: Session, ctx: TenantContext) -> Dict[str, Any]:
    dashboard = active_dashboard(db, ctx.tenant_id)
    layouts = (
        db.query(DashboardLayout)
        .options(joinedload(DashboardLayout.widget_definition).joinedload(WidgetDefinition.widget_type))
        .filter(DashboardLayout.dashboard_id == dashboard.id)
        .order_by(DashboardLayout.display_order)
        .all()
    )
    return {
        "dashboard": {
            "id": dashboard.id,
            "name": dashboard.name,
            "description": dashboard.description,
            "version": dashboard.version,
            "grid_config": dashboard.grid_config or {},
        },
        "layouts": [layout_dict(layout) for layout in layouts],
    }


def _next_display_order(db: Session, dashboard_id: UUID) -> int:
    current = (
        db.query(func.max(DashboardLayout.display_order))
        .filter(DashboardLayout.dashboard_id == dashboard_id)
        .scalar()
    )
    return (current or 0) + 1


# ---------- catalog ----------

def mapping_dict(mapping: DeviceDataMapping) -> Dict[str, Any]:
    return {
        "id": mapping.id,
        "device_type_id": mapping.device_type_id,
        "name": mapping.variable_name,
        "tag": mapping.variable_tag,
        "data_type": mapping.data_type,
        "unit": mapping.unit,
        "expression": mapping.expression,
        "ui_order": mapping.ui_order,
    }


def available_widgets(db: Session, device_type_id: Optional[int] = None) -> Dict[str, Any]:
    widget_types = (
        db.query(WidgetType)
        .filter(WidgetType.is_active == True)  # noqa: E712
        .order_by(WidgetType.name)
        .all()
    )
    properties: List[Dict[str, Any]] = []
    if device_type_id is not None:
        mappings = (
            db.query(DeviceDataMapping)
            .filter(DeviceDataMapping.device_type_id == device_type_id)
            .order_by(DeviceDataMapping.ui_order)
            .all()
        )
        properties = [mapping_dict(m) for m in mappings]

    return {
        "widget_types": [
            {
                "id": wt.id,
                "name": wt.name,
                "display_name": WIDGET_DISPLAY_NAMES.get(wt.name, wt.name),
                "component_name": wt.component_name,
                "default_config": wt.default_config or {},
            }
            for wt in widget_types
        ],
        "properties": properties,
    }


def list_device_types(db: Session) -> List[Dict[str, Any]]:
    types = db.query(DeviceType).options(joinedload(DeviceType.mappings)).order_by(DeviceType.type_name).all()
    return [
        {
            "id": t.id,
            "type_name": t.type_name,
            "logo": t.logo,
            "properties": [mapping_dict(m) for m in t.mappings],
        }
        for t in types
    ]


def create_mapping(
    db: Session,
    device_type_id: int,
    variable_name: str,
    variable_tag: str,
    unit: Optional[str] = None,
    data_type: str = "numeric",
    expression: Optional[str] = None,
    ui_order: Optional[int] = None,
) -> DeviceDataMapping:
    device_type = db.get(DeviceType, device_type_id)
    if not device_type:
        raise NotFoundError("DeviceType", device_type_id)

    known_tags = {m.variable_tag for m in device_type.mappings}
    if variable_tag in known_tags:
        raise ConflictError(f"Tag {variable_tag!r} already mapped for {device_type.type_name}")
    if expression:
        validate_expression(expression, known_tags)

    mapping = DeviceDataMapping(
        device_type_id=device_type.id,
        variable_name=variable_name,
        variable_tag=variable_tag,
        data_type=data_type,
        unit=unit,
        expression=expression,
        ui_order=ui_order if ui_order is not None else len(known_tags) + 1,
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


# ---------- layout writes ----------

def create_widget(
    db: Session,
    ctx: TenantContext,
    device_type_id: int,
    property_ids: List[int],
    widget_type: str = "line_chart",
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a widget definition and attach it to the caller's dashboard."""
    if not property_ids:
        raise InvalidInputError("At least one property is required")
    if not db.get(DeviceType, device_type_id):
        raise NotFoundError("DeviceType", device_type_id)

    mappings = (
        db.query(DeviceDataMapping)
        .filter(DeviceDataMapping.id.in_(property_ids), DeviceDataMapping.device_type_id == device_type_id)
        .all()
    )
    invalid = sorted(set(property_ids) - {m.id for m in mappings})
    if invalid:
        raise InvalidInputError(
            "Properties do not belong to this device type",
            details={"property_ids": invalid, "device_type_id": device_type_id},
        )

    wtype = db.query(WidgetType).filter(WidgetType.name == widget_type).first()
    if not wtype:
        raise InvalidInputError("Unknown widget type", details={"widget_type": widget_type})

    dashboard = active_dashboard(db, ctx.tenant_id)

    try:
        widget = WidgetDefinition(
            name=name or f"Custom Chart ({len(property_ids)} series)",
            description=description,
            widget_type_id=wtype.id,
            data_source_config={
                "deviceTypeId": device_type_id,
                "numberOfSeries": len(property_ids),
                "seriesConfig": [{"propertyId": pid} for pid in property_ids],
            },
            layout_config=dict(CREATED_WIDGET_LAYOUT),
            created_by=ctx.user_id,
        )
        db.add(widget)
        db.flush()

        layout = DashboardLayout(
            dashboard_id=dashboard.id,
            widget_definition_id=widget.id,
            layout_config=dict(CREATED_WIDGET_LAYOUT),
            display_order=_next_display_order(db, dashboard.id),
        )
        db.add(layout)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Widget creation failed for company %s, rolled back", ctx.tenant_id)
        raise

    db.refresh(layout)
    logger.info("Widget %s created on dashboard %s by user %s", widget.id, dashboard.id, ctx.user_id)
    return layout_dict(layout)


def add_to_dashboard(
    db: Session,
    ctx: TenantContext,
    widget_id: UUID,
    layout_config: Optional[Dict[str, Any]] = None,
    instance_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    widget = db.get(WidgetDefinition, widget_id)
    if not widget:
        raise NotFoundError("Widget", widget_id)

    dashboard = active_dashboard(db, ctx.tenant_id)
    exists = (
        db.query(DashboardLayout)
        .filter(DashboardLayout.dashboard_id == dashboard.id, DashboardLayout.widget_definition_id == widget.id)
        .first()
    )
    if exists:
        raise ConflictError("Widget already on dashboard")

    try:
        layout = DashboardLayout(
            dashboard_id=dashboard.id,
            widget_definition_id=widget.id,
            layout_config=layout_config or dict(ATTACHED_WIDGET_LAYOUT),
            instance_config=instance_config,
            display_order=_next_display_order(db, dashboard.id),
        )
        db.add(layout)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(layout)
    return layout_dict(layout)


def _owned_layout(db: Session, ctx: TenantContext, layout_id: UUID) -> DashboardLayout:
    layout = (
        db.query(DashboardLayout)
        .options(joinedload(DashboardLayout.dashboard))
        .filter(DashboardLayout.id == layout_id)
        .first()
    )
    if not layout:
        raise NotFoundError("DashboardLayout", layout_id)
    if layout.dashboard.company_id != ctx.tenant_id:
        raise ForbiddenError("Layout belongs to another company")
    return layout


def remove_widget(db: Session, ctx: TenantContext, layout_id: UUID) -> None:
    layout = _owned_layout(db, ctx, layout_id)
    db.delete(layout)
    db.commit()


def update_layout(db: Session, ctx: TenantContext, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Apply several layout changes; either all of them land or none."""
    try:
        updated = []
        for item in items:
            layout = _owned_layout(db, ctx, item["layout_id"])
            layout.layout_config = item["layout_config"]
            if item.get("display_order") is not None:
                layout.display_order = item["display_order"]
            layout.updated_at = utcnow()
            updated.append(layout)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for layout in updated:
        db.refresh(layout)
    return [layout_dict(layout) for layout in updated]


# ---------- widget data ----------

def _widget(db: Session, widget_id: UUID) -> WidgetDefinition:
    widget = db.get(WidgetDefinition, widget_id)
    if not widget:
        raise NotFoundError("Widget", widget_id)
    return widget


def _series_mappings(db: Session, widget: WidgetDefinition) -> List[DeviceDataMapping]:
    config = widget.data_source_config or {}
    property_ids = [s.get("propertyId") for s in config.get("seriesConfig", []) if s.get("propertyId") is not None]
    if not property_ids:
        return []
    by_id = {
        m.id: m
        for m in db.query(DeviceDataMapping).filter(DeviceDataMapping.id.in_(property_ids)).all()
    }
    missing = [pid for pid in property_ids if pid not in by_id]
    if missing:
        logger.warning("Widget %s references unknown properties %s", widget.id, missing)
    return [by_id[pid] for pid in property_ids if pid in by_id]


def _scope_devices(
    db: Session,
    ctx: TenantContext,
    device_type_id: Optional[int],
    hierarchy_id: Optional[int] = None,
    device_id: Optional[int] = None,
) -> List[Device]:
    if device_id is not None:
        devices = [device_registry.device_by_id(db, ctx, device_id)]
    elif hierarchy_id is not None:
        node = hierarchy_service.get_node(db, ctx, hierarchy_id)
        node_ids = hierarchy_service.resolve_subtree(db, node.id, company_id=node.company_id)
        devices = device_registry.devices_for_subtree(db, node_ids, node.company_id)
    else:
        devices = device_registry.devices_for_tenant(db, ctx, ctx.tenant_id).all()

    if device_type_id is not None:
        devices = [d for d in devices if d.device_type_id == device_type_id]
    return devices


def _value_of(mapping: DeviceDataMapping, payload) -> Optional[float]:
    if mapping.expression:
        return parse_expression(mapping.expression).evaluate(payload)
    return numeric(payload, mapping.variable_tag)


def _scan_points(
    db: Session,
    mappings: List[DeviceDataMapping],
    device_ids: List[int],
    start: Optional[datetime],
    limit: int,
) -> Dict[int, List[Dict[str, Any]]]:
    """Newest-first keyset scan shared by every mapping of a widget.

    Stops once each mapping holds ``limit`` points or after
    ``WIDGET_MAX_SCAN_ROWS`` rows, whichever comes first.
    """
    points: Dict[int, List[Dict[str, Any]]] = {m.id: [] for m in mappings}
    if not device_ids or not mappings:
        return points

    q = db.query(DeviceData).filter(DeviceData.device_id.in_(device_ids))
    if start is not None:
        q = q.filter(DeviceData.created_at >= start)
    q = q.order_by(DeviceData.created_at.desc(), DeviceData.id.desc())

    open_mappings = list({m.id: m for m in mappings}.values())
    scanned = 0
    cursor = None
    while open_mappings and scanned < settings.WIDGET_MAX_SCAN_ROWS:
        page = q
        if cursor is not None:
            ts, row_id = cursor
            page = page.filter(or_(
                DeviceData.created_at < ts,
                and_(DeviceData.created_at == ts, DeviceData.id < row_id),
            ))
        rows = page.limit(min(FETCH_CHUNK, settings.WIDGET_MAX_SCAN_ROWS - scanned)).all()
        if not rows:
            break
        scanned += len(rows)
        cursor = (rows[-1].created_at, rows[-1].id)

        for row in rows:
            for mapping in open_mappings:
                bucket = points[mapping.id]
                if len(bucket) >= limit:
                    continue
                value = _value_of(mapping, row.data)
                if value is not None:
                    bucket.append({"timestamp": row.created_at, "serial_number": row.serial_number, "value": value})
        open_mappings = [m for m in open_mappings if len(points[m.id]) < limit]

    if open_mappings and scanned >= settings.WIDGET_MAX_SCAN_ROWS:
        logger.warning(
            "Widget scan stopped after %d rows; %s still short of %d points",
            scanned, [m.variable_tag for m in open_mappings], limit,
        )
    return points


def widget_series(
    db: Session,
    ctx: TenantContext,
    widget_id: UUID,
    time_range: str = "24h",
    limit: int = 200,
    hierarchy_id: Optional[int] = None,
    device_id: Optional[int] = None,
) -> Dict[str, Any]:
    widget = _widget(db, widget_id)
    config = widget.data_source_config or {}
    mappings = _series_mappings(db, widget)
    devices = _scope_devices(db, ctx, config.get("deviceTypeId"), hierarchy_id, device_id)

    start = widget_range_start(time_range, utcnow())
    points = _scan_points(db, mappings, [d.id for d in devices], start, limit)

    series = []
    for mapping in mappings:
        series.append({
            "property_id": mapping.id,
            "property_name": mapping.variable_name,
            "tag": mapping.variable_tag,
            "unit": mapping.unit,
            "data": list(reversed(points[mapping.id])),
        })

    return {
        "widget": {"id": widget.id, "name": widget.name},
        "time_range": time_range,
        "series": series,
    }


def widget_latest(
    db: Session,
    ctx: TenantContext,
    widget_id: UUID,
    hierarchy_id: Optional[int] = None,
    device_id: Optional[int] = None,
) -> Dict[str, Any]:
    widget = _widget(db, widget_id)
    config = widget.data_source_config or {}
    mappings = _series_mappings(db, widget)
    devices = _scope_devices(db, ctx, config.get("deviceTypeId"), hierarchy_id, device_id)

    latest_by_device = {d.id: reading_store.latest_reading(db, d) for d in devices}

    series = []
    for mapping in mappings:
        latest = []
        for device in devices:
            reading = latest_by_device.get(device.id)
            if reading is None:
                continue
            value = _value_of(mapping, reading["data"])
            if value is None:
                continue
            latest.append({
                "timestamp": reading["timestamp"],
                "serial_number": device.serial_number,
                "value": value,
                "location": device.hierarchy.name if device.hierarchy else None,
                "device_type": device.type_name,
            })
        values = [p["value"] for p in latest]
        series.append({
            "property_id": mapping.id,
            "property_name": mapping.variable_name,
            "tag": mapping.variable_tag,
            "unit": mapping.unit,
            "latest": latest,
            "aggregated_value": sum(values) / len(values) if values else 0.0,
            "count": len(latest),
        })

    return {"widget": {"id": widget.id, "name": widget.name}, "series": series}
