from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Optional

class DeviceOut(BaseModel):
    id: int
    serial_number: str
    type: Optional[str] = None
    device_type_id: int
    logo: Optional[str] = None
    company_id: int
    company: Optional[str] = None
    hierarchy_id: Optional[int] = None
    hierarchy: Optional[str] = None
    metadata: Dict[str, Any] = {}
    status: str
    last_update: Optional[datetime] = None
    created_at: Optional[datetime] = None

class DeviceMetadataUpdate(BaseModel):
    metadata: Dict[str, Any]
