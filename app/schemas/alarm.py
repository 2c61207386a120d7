from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

class AlarmCreate(BaseModel):
    device_serial: str
    alarm_type_id: int
    message: Optional[str] = Field(None, max_length=500)
    metadata: Optional[Dict[str, Any]] = None

class AlarmStatusUpdate(BaseModel):
    status_id: int

class AlarmTypeOut(BaseModel):
    id: int
    name: str
    severity: str

    class Config:
        from_attributes = True

class AlarmStatusOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True

class AlarmOut(BaseModel):
    id: int
    device_serial: str
    hierarchy: Optional[str] = None
    alarm_type_id: int
    alarm_type: Optional[str] = None
    severity: Optional[str] = None
    status_id: int
    status: Optional[str] = None
    message: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    acknowledged_by: Optional[int] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None

class AlarmStatistics(BaseModel):
    total: int
    active: int
    acknowledged: int
    resolved: int
    unacked: int
    by_status: Dict[str, int]
    by_severity: Dict[str, int]

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class AlarmListOut(BaseModel):
    alarms: List[AlarmOut]
    pagination: Pagination
    statistics: AlarmStatistics

class AlarmDashboardOut(BaseModel):
    statistics: AlarmStatistics
    recent_alarms: List[AlarmOut]
