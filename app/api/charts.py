from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import TenantContext, get_db, get_tenant_context
from app.schemas.chart import DeviceChartOut, HierarchyChartOut, RealtimeOut
from app.services import chart_service

router = APIRouter(prefix="/api/charts", tags=["charts"])

TIME_RANGE_DOC = "hour | day | week | month (anything else behaves like day)"


@router.get("/device/{device_id}", response_model=DeviceChartOut)
def device_chart(
    device_id: int,
    time_range: str = Query("day", description=TIME_RANGE_DOC),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return chart_service.get_device_chart(db, ctx, device_id, time_range)


@router.get("/device/{device_id}/realtime", response_model=RealtimeOut)
def device_realtime(
    device_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return chart_service.get_realtime(db, ctx, device_id)


@router.get("/hierarchy/{hierarchy_id}", response_model=HierarchyChartOut)
def hierarchy_chart(
    hierarchy_id: int,
    time_range: str = Query("day", description=TIME_RANGE_DOC),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    """
    Rollup of every device under the node (recursively).
    Flow rates are summed across devices; GVF/WLR are derived from the sums.
    """
    return chart_service.get_hierarchy_chart(db, ctx, hierarchy_id, time_range)


@router.get("/dashboard")
def company_dashboard(
    company_id: Optional[int] = Query(None, description="Admin only"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return chart_service.company_dashboard(db, ctx, company_id)
