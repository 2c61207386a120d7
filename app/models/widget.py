import uuid
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.db.base import Base, JSONType

class WidgetType(Base):
    __tablename__ = "widget_types"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)          # ex: "line_chart", "kpi"
    component_name = Column(String, nullable=False)             # ex: "CustomLineChart"
    default_config = Column(JSONType, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)


class WidgetDefinition(Base):
    __tablename__ = "widget_definitions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    widget_type_id = Column(Uuid(as_uuid=True), ForeignKey("widget_types.id"), nullable=False)
    widget_type = relationship("WidgetType")

    # {"deviceTypeId": 1, "numberOfSeries": 2, "seriesConfig": [{"propertyId": 3}, ...]}
    data_source_config = Column(JSONType, nullable=False, default=dict)
    layout_config = Column(JSONType, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Dashboard(Base):
    __tablename__ = "dashboards"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Integer, ForeignKey("company.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    version = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)
    grid_config = Column(JSONType, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    layouts = relationship(
        "DashboardLayout",
        back_populates="dashboard",
        order_by="DashboardLayout.display_order",
        cascade="all, delete-orphan",
    )


class DashboardLayout(Base):
    __tablename__ = "dashboard_layouts"
    __table_args__ = (
        UniqueConstraint("dashboard_id", "widget_definition_id", name="uq_dashboard_widget"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    dashboard_id = Column(Uuid(as_uuid=True), ForeignKey("dashboards.id", ondelete="CASCADE"), nullable=False)
    dashboard = relationship("Dashboard", back_populates="layouts")

    widget_definition_id = Column(Uuid(as_uuid=True), ForeignKey("widget_definitions.id"), nullable=False)
    widget_definition = relationship("WidgetDefinition")

    # {"x": 0, "y": 0, "w": 6, "h": 3, "minW": 3, "minH": 2, "static": false}
    layout_config = Column(JSONType, nullable=False)
    instance_config = Column(JSONType, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
