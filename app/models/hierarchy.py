from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.db.base import Base

class HierarchyLevel(Base):
    __tablename__ = "hierarchy_level"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)           # Region, Area, Field, Well
    level_order = Column(Integer, unique=True, nullable=False)
    icon = Column(String, nullable=True)


class Hierarchy(Base):
    __tablename__ = "hierarchy"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("company.id"), nullable=False, index=True)
    company = relationship("Company")

    name = Column(String, nullable=False)
    level_id = Column(Integer, ForeignKey("hierarchy_level.id"), nullable=False)
    level = relationship("HierarchyLevel")

    parent_id = Column(Integer, ForeignKey("hierarchy.id", ondelete="CASCADE"), nullable=True, index=True)
    parent = relationship("Hierarchy", remote_side=[id])

    can_attach_device = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def level_order(self):
        return self.level.level_order if self.level else None

    @property
    def level_name(self):
        return self.level.name if self.level else None
