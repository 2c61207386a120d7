from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.schemas.device import DeviceOut
from app.schemas.reading import LatestReading

class DevicePoint(BaseModel):
    timestamp: datetime
    gfr: float = 0.0
    gor: float = 0.0
    gvf: float = 0.0
    ofr: float = 0.0
    wfr: float = 0.0
    wlr: float = 0.0
    pressure: float = 0.0
    temperature: float = 0.0
    data_points: int = 0

class HierarchyPoint(BaseModel):
    timestamp: datetime
    total_gfr: float = 0.0
    total_gor: float = 0.0
    total_ofr: float = 0.0
    total_wfr: float = 0.0
    total_gvf: float = 0.0
    total_wlr: float = 0.0
    avg_pressure: float = 0.0
    avg_temperature: float = 0.0
    device_count: int = 0

class HierarchyRef(BaseModel):
    id: int
    name: str
    level: Optional[str] = None
    level_order: Optional[int] = None
    company_id: int

class HierarchyDevice(BaseModel):
    id: int
    serial_number: str
    type: Optional[str] = None
    hierarchy_id: Optional[int] = None

class DeviceChartOut(BaseModel):
    device: DeviceOut
    series: List[DevicePoint]
    latest: Optional[LatestReading] = None
    time_range: str
    total_data_points: int

class HierarchyChartOut(BaseModel):
    hierarchy: HierarchyRef
    series: List[HierarchyPoint]
    devices: List[HierarchyDevice]
    time_range: str
    total_data_points: int
    total_devices: int

class RealtimeOut(BaseModel):
    device: DeviceOut
    latest: Optional[LatestReading] = None
