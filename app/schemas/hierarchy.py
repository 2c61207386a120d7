from pydantic import BaseModel
from typing import Optional

class HierarchyLevelOut(BaseModel):
    id: int
    name: str
    level_order: int
    icon: Optional[str] = None

    class Config:
        from_attributes = True

class HierarchyNodeOut(BaseModel):
    id: int
    company_id: int
    name: str
    level_id: int
    level_name: Optional[str] = None
    level_order: Optional[int] = None
    parent_id: Optional[int] = None
    can_attach_device: bool = False

    class Config:
        from_attributes = True
