from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import TenantContext, get_db, get_tenant_context
from app.schemas.hierarchy import HierarchyLevelOut, HierarchyNodeOut
from app.services import hierarchy_service

router = APIRouter(prefix="/api/hierarchy", tags=["hierarchy"])


@router.get("/levels", response_model=List[HierarchyLevelOut])
def list_levels(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return hierarchy_service.list_levels(db)


@router.get("/tree")
def get_tree(
    company_id: Optional[int] = Query(None, description="Admin only: restrict to one company"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    """
    Organizational forest grouped by company name.
    - admin: every company, or only ``company_id``
    - user: own company only
    """
    scope = company_id if ctx.is_admin else ctx.tenant_id
    return hierarchy_service.build_tree(db, scope)


@router.get("/dashboard")
def get_dashboard(
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Dict[str, Any]:
    return hierarchy_service.hierarchy_dashboard(db, ctx, company_id)


@router.get("", response_model=List[HierarchyNodeOut])
def list_nodes(
    company_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return hierarchy_service.list_nodes(db, ctx, company_id)


@router.get("/{node_id}", response_model=HierarchyNodeOut)
def get_node(
    node_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return hierarchy_service.get_node(db, ctx, node_id)
