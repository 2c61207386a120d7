from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import ADMIN_ROLE, TenantContext, get_db, get_tenant_context, require_roles
from app.schemas.alarm import (
    AlarmCreate,
    AlarmDashboardOut,
    AlarmListOut,
    AlarmOut,
    AlarmStatusOut,
    AlarmStatusUpdate,
    AlarmTypeOut,
)
from app.services import alarm_service

router = APIRouter(prefix="/api/alarms", tags=["alarms"])


@router.get("", response_model=AlarmListOut)
def list_alarms(
    hierarchy_id: Optional[int] = Query(None, description="Includes every node below it"),
    device_serial: Optional[str] = Query(None, description="Substring match"),
    alarm_type_id: Optional[int] = Query(None),
    status_id: Optional[int] = Query(None),
    severity: Optional[str] = Query(None, description="Critical | Major | Minor | Warning"),
    company_id: Optional[int] = Query(None, description="Admin only"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    filters = alarm_service.AlarmFilters(
        hierarchy_id=hierarchy_id,
        device_serial=device_serial,
        alarm_type_id=alarm_type_id,
        status_id=status_id,
        severity=severity,
        company_id=company_id,
    )
    return alarm_service.list_alarms(db, ctx, filters, page, limit, sort_by, sort_order)


@router.get("/types/all", response_model=List[AlarmTypeOut])
def list_alarm_types(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return alarm_service.list_types(db)


@router.get("/statuses/all", response_model=List[AlarmStatusOut])
def list_alarm_statuses(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return alarm_service.list_statuses(db)


@router.get("/dashboard/stats", response_model=AlarmDashboardOut)
def alarm_dashboard(
    company_id: Optional[int] = Query(None, description="Admin only"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return alarm_service.dashboard_stats(db, ctx, company_id)


@router.get("/{alarm_id}", response_model=AlarmOut)
def get_alarm(
    alarm_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return alarm_service.alarm_dict(alarm_service.get_alarm(db, ctx, alarm_id))


@router.post(
    "",
    response_model=AlarmOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
def create_alarm(
    body: AlarmCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    alarm = alarm_service.create_alarm(
        db, ctx, body.device_serial, body.alarm_type_id, body.message, body.metadata,
    )
    return alarm_service.alarm_dict(alarm)


@router.put("/{alarm_id}/status", response_model=AlarmOut)
def update_alarm_status(
    alarm_id: int,
    body: AlarmStatusUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    alarm = alarm_service.update_status(db, ctx, alarm_id, body.status_id)
    return alarm_service.alarm_dict(alarm)
