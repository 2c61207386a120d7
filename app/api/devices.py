from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import ADMIN_ROLE, TenantContext, get_db, get_tenant_context, require_roles
from app.schemas.device import DeviceMetadataUpdate, DeviceOut
from app.services import device_registry

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("")
def list_devices(
    company_id: Optional[int] = Query(None, description="Admin only"),
    search: Optional[str] = Query(None, description="Serial number or location name"),
    status: Optional[str] = Query(None, description="online | offline"),
    device_type: Optional[str] = Query(None, alias="deviceType"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return device_registry.list_devices(db, ctx, company_id, search, status, device_type, page, limit)


@router.get("/hierarchy/{hierarchy_id}")
def list_hierarchy_devices(
    hierarchy_id: int,
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="online | offline"),
    device_type: Optional[str] = Query(None, alias="deviceType"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return device_registry.hierarchy_devices(db, ctx, hierarchy_id, search, status, device_type)


@router.get("/{device_id}")
def get_device(
    device_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return device_registry.device_detail(db, ctx, device_id)


@router.put("/{device_id}", response_model=DeviceOut, dependencies=[Depends(require_roles(ADMIN_ROLE))])
def update_device(
    device_id: int,
    body: DeviceMetadataUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    device = device_registry.update_metadata(db, ctx, device_id, body.metadata)
    return device_registry.device_dict(device)
