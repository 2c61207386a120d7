from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

class ReadingCreate(BaseModel):
    serial_number: str
    data: Dict[str, Any] = Field(..., description="Tag -> value, e.g. {\"OFR\": 120.5}")
    timestamp: Optional[datetime] = None
    longitude: Optional[float] = None
    latitude: Optional[float] = None

class ReadingOut(BaseModel):
    id: int
    device_id: int
    serial_number: str
    created_at: datetime
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    data: Dict[str, Any]

    class Config:
        from_attributes = True

class LatestReading(BaseModel):
    timestamp: datetime
    received_at: Optional[datetime] = None
    data: Dict[str, Any]
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    values: Optional[Dict[str, float]] = None
