from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.deps import ADMIN_ROLE, TenantContext, get_db, get_tenant_context, require_roles
from app.core.clock import to_naive_utc
from app.core.exceptions import NotFoundError
from app.schemas.reading import LatestReading, ReadingCreate, ReadingOut
from app.services import device_registry, reading_store

router = APIRouter(prefix="/api/readings", tags=["readings"])


@router.post(
    "",
    response_model=ReadingOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
def create_reading(
    body: ReadingCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    device = device_registry.device_by_serial(db, ctx, body.serial_number)
    return reading_store.record_reading(
        db, device, body.data, timestamp=to_naive_utc(body.timestamp), longitude=body.longitude, latitude=body.latitude,
    )


@router.get("/latest/{device_id}", response_model=LatestReading)
def get_latest(
    device_id: int,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
):
    device = device_registry.device_by_id(db, ctx, device_id)
    latest = reading_store.latest_reading(db, device)
    if latest is None:
        raise NotFoundError("Reading", device.serial_number)
    return latest
