from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.deps import ADMIN_ROLE, TenantContext, get_db, get_tenant_context, require_roles
from app.schemas.widget import (
    AddToDashboard,
    LayoutOut,
    LayoutUpdate,
    MappingCreate,
    MappingOut,
    WidgetCreate,
)
from app.services import widget_service

router = APIRouter(prefix="/api/widgets", tags=["widgets"])

admin_only = [Depends(require_roles(ADMIN_ROLE))]


@router.get("/user-dashboard")
def get_user_dashboard(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return widget_service.user_dashboard(db, ctx)


@router.get("/available-widgets")
def get_available_widgets(
    device_type_id: Optional[int] = Query(None, alias="deviceTypeId"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return widget_service.available_widgets(db, device_type_id)


@router.get("/device-types", dependencies=admin_only)
def get_device_types(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return widget_service.list_device_types(db)


@router.post(
    "/device-types/{device_type_id}/mappings",
    response_model=MappingOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
)
def create_mapping(
    device_type_id: int,
    body: MappingCreate,
    db: Session = Depends(get_db),
):
    mapping = widget_service.create_mapping(
        db,
        device_type_id,
        variable_name=body.variable_name,
        variable_tag=body.variable_tag,
        unit=body.unit,
        data_type=body.data_type,
        expression=body.expression,
        ui_order=body.ui_order,
    )
    return widget_service.mapping_dict(mapping)


@router.post("/create-widget", response_model=LayoutOut, status_code=status.HTTP_201_CREATED, dependencies=admin_only)
def create_widget(
    body: WidgetCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return widget_service.create_widget(
        db, ctx, body.device_type_id, body.property_ids, body.widget_type, body.name, body.description,
    )


@router.post("/add-to-dashboard", response_model=LayoutOut, status_code=status.HTTP_201_CREATED, dependencies=admin_only)
def add_to_dashboard(
    body: AddToDashboard,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return widget_service.add_to_dashboard(db, ctx, body.widget_id, body.layout_config, body.instance_config)


@router.delete("/remove-widget/{layout_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=admin_only)
def remove_widget(
    layout_id: UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    widget_service.remove_widget(db, ctx, layout_id)


@router.post("/update-layout", response_model=List[LayoutOut], dependencies=admin_only)
def update_layout(
    body: LayoutUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return widget_service.update_layout(db, ctx, [item.model_dump() for item in body.layouts])


@router.get("/widget-data/{widget_id}")
def get_widget_data(
    widget_id: UUID,
    time_range: str = Query("24h", alias="timeRange", description="1h | 6h | 24h | 7d | 30d"),
    limit: int = Query(200, ge=1, le=5000),
    hierarchy_id: Optional[int] = Query(None, alias="hierarchyId"),
    device_id: Optional[int] = Query(None, alias="deviceId"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return widget_service.widget_series(db, ctx, widget_id, time_range, limit, hierarchy_id, device_id)


@router.get("/widget-data/{widget_id}/latest")
def get_widget_latest(
    widget_id: UUID,
    hierarchy_id: Optional[int] = Query(None, alias="hierarchyId"),
    device_id: Optional[int] = Query(None, alias="deviceId"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return widget_service.widget_latest(db, ctx, widget_id, hierarchy_id, device_id)
