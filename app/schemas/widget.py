from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

class WidgetCreate(BaseModel):
    device_type_id: int
    property_ids: List[int] = Field(..., min_length=1)
    widget_type: str = "line_chart"
    name: Optional[str] = None
    description: Optional[str] = None

class AddToDashboard(BaseModel):
    widget_id: UUID
    layout_config: Optional[Dict[str, Any]] = None
    instance_config: Optional[Dict[str, Any]] = None

class LayoutItem(BaseModel):
    layout_id: UUID
    layout_config: Dict[str, Any]
    display_order: Optional[int] = None

class LayoutUpdate(BaseModel):
    layouts: List[LayoutItem] = Field(..., min_length=1)

class MappingCreate(BaseModel):
    variable_name: str
    variable_tag: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    unit: Optional[str] = None
    data_type: str = "numeric"
    expression: Optional[str] = None
    ui_order: Optional[int] = None

class LayoutOut(BaseModel):
    layout_id: UUID
    widget_id: UUID
    name: Optional[str] = None
    description: Optional[str] = None
    widget_type: Optional[str] = None
    component: Optional[str] = None
    data_source_config: Dict[str, Any] = {}
    layout_config: Dict[str, Any]
    instance_config: Dict[str, Any] = {}
    display_order: int

class MappingOut(BaseModel):
    id: int
    device_type_id: int
    name: str
    tag: str
    data_type: str
    unit: Optional[str] = None
    expression: Optional[str] = None
    ui_order: int
