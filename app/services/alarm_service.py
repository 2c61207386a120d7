"""
Alarm lifecycle.

Statuses live in ``alarm_status_type`` and are matched by name, so the
seed order of that table never changes behaviour. No transition is
refused: a resolved alarm can be re-opened by setting it back to Active.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.core.clock import utcnow
from app.core.deps import TenantContext
from app.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from app.models.alarm import AlarmStatus, AlarmType, DeviceAlarm
from app.models.device import Device
from app.services import device_registry, hierarchy_service

logger = logging.getLogger(__name__)

ACTIVE = "Active"
ACKNOWLEDGED = "Acknowledged"
RESOLVED = "Resolved"
UNACKED = "Unacked"

SEVERITIES = ("Critical", "Major", "Minor", "Warning")


@dataclass
class AlarmFilters:
    hierarchy_id: Optional[int] = None
    device_serial: Optional[str] = None
    alarm_type_id: Optional[int] = None
    status_id: Optional[int] = None
    severity: Optional[str] = None
    company_id: Optional[int] = None


class AlarmQuery:
    """Accumulates WHERE clauses once and reuses them for both the page
    query and its COUNT so the two can never disagree."""

    SORT_COLUMNS = {
        "id": DeviceAlarm.id,
        "created_at": DeviceAlarm.created_at,
        "updated_at": DeviceAlarm.updated_at,
        "device_serial": DeviceAlarm.device_serial,
        "alarm_type": AlarmType.name,
        "severity": AlarmType.severity,
        "status": AlarmStatus.name,
    }

    def __init__(self, db: Session, ctx: TenantContext):
        self.db = db
        self.ctx = ctx
        self.predicates: List[Any] = []

    def where(self, *clauses) -> "AlarmQuery":
        self.predicates.extend(clauses)
        return self

    def scoped(self, filters: AlarmFilters) -> "AlarmQuery":
        if not self.ctx.is_admin:
            self.where(Device.company_id == self.ctx.tenant_id)
        elif filters.company_id is not None:
            self.where(Device.company_id == filters.company_id)

        if filters.hierarchy_id is not None:
            node = hierarchy_service.get_node(self.db, self.ctx, filters.hierarchy_id)
            node_ids = hierarchy_service.resolve_subtree(self.db, node.id, company_id=node.company_id)
            self.where(Device.hierarchy_id.in_(node_ids), Device.company_id == node.company_id)
        return self

    def filtered(self, filters: AlarmFilters) -> "AlarmQuery":
        self.scoped(filters)
        if filters.device_serial:
            self.where(DeviceAlarm.device_serial.ilike(f"%{filters.device_serial}%"))
        if filters.alarm_type_id is not None:
            self.where(DeviceAlarm.alarm_type_id == filters.alarm_type_id)
        if filters.status_id is not None:
            self.where(DeviceAlarm.status_id == filters.status_id)
        if filters.severity:
            if filters.severity not in SEVERITIES:
                raise InvalidInputError("Unknown severity", details={"severity": filters.severity})
            self.where(AlarmType.severity == filters.severity)
        return self

    def _joined(self, q):
        return (
            q.join(AlarmType, DeviceAlarm.alarm_type_id == AlarmType.id)
            .join(AlarmStatus, DeviceAlarm.status_id == AlarmStatus.id)
            .join(Device, Device.serial_number == DeviceAlarm.device_serial)
            .filter(*self.predicates)
        )

    def count(self) -> int:
        return self._joined(self.db.query(func.count(DeviceAlarm.id)).select_from(DeviceAlarm)).scalar() or 0

    def counts_by(self, column) -> Dict[str, int]:
        rows = self._joined(
            self.db.query(column, func.count(DeviceAlarm.id)).select_from(DeviceAlarm)
        ).group_by(column).all()
        return {name: count for name, count in rows}

    def page(self, sort_by: str = "created_at", sort_order: str = "desc", page: int = 1, limit: int = 20) -> List[DeviceAlarm]:
        column = self.SORT_COLUMNS.get(sort_by)
        if column is None:
            raise InvalidInputError(
                "Invalid sort column",
                details={"sort_by": sort_by, "allowed": sorted(self.SORT_COLUMNS)},
            )
        direction = (sort_order or "desc").lower()
        if direction not in ("asc", "desc"):
            raise InvalidInputError("sort_order must be 'asc' or 'desc'", details={"sort_order": sort_order})

        order = column.asc() if direction == "asc" else column.desc()
        q = self._joined(
            self.db.query(DeviceAlarm).options(
                joinedload(DeviceAlarm.alarm_type),
                joinedload(DeviceAlarm.status),
                joinedload(DeviceAlarm.device).joinedload(Device.hierarchy),
            )
        )
        return q.order_by(order, DeviceAlarm.id.desc()).offset((page - 1) * limit).limit(limit).all()


def alarm_dict(alarm: DeviceAlarm) -> Dict[str, Any]:
    device = alarm.device
    return {
        "id": alarm.id,
        "device_serial": alarm.device_serial,
        "hierarchy": device.hierarchy.name if device is not None and device.hierarchy else None,
        "alarm_type_id": alarm.alarm_type_id,
        "alarm_type": alarm.alarm_type.name if alarm.alarm_type else None,
        "severity": alarm.alarm_type.severity if alarm.alarm_type else None,
        "status_id": alarm.status_id,
        "status": alarm.status.name if alarm.status else None,
        "message": alarm.message,
        "metadata": alarm.meta or {},
        "created_at": alarm.created_at,
        "updated_at": alarm.updated_at,
        "acknowledged_by": alarm.acknowledged_by,
        "acknowledged_at": alarm.acknowledged_at,
        "resolved_by": alarm.resolved_by,
        "resolved_at": alarm.resolved_at,
    }


def status_by_name(db: Session, name: str) -> AlarmStatus:
    status = db.query(AlarmStatus).filter(AlarmStatus.name == name).first()
    if not status:
        raise NotFoundError("AlarmStatus", name)
    return status


def alarm_statistics(
    db: Session,
    ctx: TenantContext,
    hierarchy_id: Optional[int] = None,
    company_id: Optional[int] = None,
) -> Dict[str, Any]:
    scope = AlarmFilters(hierarchy_id=hierarchy_id, company_id=company_id)
    query = AlarmQuery(db, ctx).scoped(scope)

    by_status = query.counts_by(AlarmStatus.name)
    by_severity = query.counts_by(AlarmType.severity)
    return {
        "total": sum(by_status.values()),
        "active": by_status.get(ACTIVE, 0),
        "acknowledged": by_status.get(ACKNOWLEDGED, 0),
        "resolved": by_status.get(RESOLVED, 0),
        "unacked": by_status.get(UNACKED, 0),
        "by_status": by_status,
        "by_severity": {sev: by_severity.get(sev, 0) for sev in SEVERITIES},
    }


def list_alarms(
    db: Session,
    ctx: TenantContext,
    filters: AlarmFilters,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    query = AlarmQuery(db, ctx).filtered(filters)
    total = query.count()
    alarms = query.page(sort_by, sort_order, page, limit)

    return {
        "alarms": [alarm_dict(a) for a in alarms],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
        "statistics": alarm_statistics(db, ctx, filters.hierarchy_id, filters.company_id),
    }


def get_alarm(db: Session, ctx: TenantContext, alarm_id: int) -> DeviceAlarm:
    alarm = (
        db.query(DeviceAlarm)
        .options(
            joinedload(DeviceAlarm.alarm_type),
            joinedload(DeviceAlarm.status),
            joinedload(DeviceAlarm.device).joinedload(Device.hierarchy),
        )
        .filter(DeviceAlarm.id == alarm_id)
        .first()
    )
    if not alarm:
        raise NotFoundError("Alarm", alarm_id)
    if not ctx.is_admin and (alarm.device is None or alarm.device.company_id != ctx.tenant_id):
        raise ForbiddenError("Alarm belongs to another company")
    return alarm


def create_alarm(
    db: Session,
    ctx: TenantContext,
    device_serial: str,
    alarm_type_id: int,
    message: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> DeviceAlarm:
    alarm_type = db.get(AlarmType, alarm_type_id)
    if not alarm_type:
        raise InvalidInputError("Invalid alarm type", details={"alarm_type_id": alarm_type_id})

    device = device_registry.device_by_serial(db, ctx, device_serial)
    active = status_by_name(db, ACTIVE)

    alarm = DeviceAlarm(
        device_serial=device.serial_number,
        alarm_type_id=alarm_type.id,
        status_id=active.id,
        message=message,
        meta=metadata or {},
    )
    db.add(alarm)
    db.commit()
    logger.info("Alarm %s (%s) raised for %s", alarm.id, alarm_type.name, device.serial_number)
    return get_alarm(db, ctx, alarm.id)


def update_status(db: Session, ctx: TenantContext, alarm_id: int, status_id: int) -> DeviceAlarm:
    alarm = get_alarm(db, ctx, alarm_id)
    status = db.get(AlarmStatus, status_id)
    if not status:
        raise InvalidInputError("Invalid status", details={"status_id": status_id})

    now = utcnow()
    alarm.status_id = status.id
    alarm.updated_at = now
    if status.name == ACKNOWLEDGED:
        alarm.acknowledged_by = ctx.user_id
        alarm.acknowledged_at = now
    elif status.name == RESOLVED:
        alarm.resolved_by = ctx.user_id
        alarm.resolved_at = now

    db.commit()
    db.refresh(alarm)
    logger.info("Alarm %s set to %s by user %s", alarm.id, status.name, ctx.user_id)
    return alarm


def list_types(db: Session) -> List[AlarmType]:
    return db.query(AlarmType).order_by(AlarmType.severity, AlarmType.name).all()


def list_statuses(db: Session) -> List[AlarmStatus]:
    return db.query(AlarmStatus).order_by(AlarmStatus.id).all()


def dashboard_stats(db: Session, ctx: TenantContext, company_id: Optional[int] = None) -> Dict[str, Any]:
    query = AlarmQuery(db, ctx).scoped(AlarmFilters(company_id=company_id))
    return {
        "statistics": alarm_statistics(db, ctx, company_id=company_id),
        "recent_alarms": [alarm_dict(a) for a in query.page("created_at", "desc", 1, 10)],
    }
