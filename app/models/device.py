from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.db.base import Base, JSONType

class DeviceType(Base):
    __tablename__ = "device_type"

    id = Column(Integer, primary_key=True, index=True)
    type_name = Column(String, unique=True, nullable=False)     # ex: "MPFM", "Pressure Sensor"
    logo = Column(String, nullable=True)

    mappings = relationship(
        "DeviceDataMapping",
        back_populates="device_type",
        order_by="DeviceDataMapping.ui_order",
    )


class DeviceDataMapping(Base):
    __tablename__ = "device_data_mapping"
    __table_args__ = (
        UniqueConstraint("device_type_id", "variable_tag", name="uq_mapping_type_tag"),
    )

    id = Column(Integer, primary_key=True, index=True)
    device_type_id = Column(Integer, ForeignKey("device_type.id"), nullable=False, index=True)
    device_type = relationship("DeviceType", back_populates="mappings")

    variable_name = Column(String, nullable=False)   # ex: "Oil Flow Rate"
    variable_tag = Column(String, nullable=False)    # ex: "OFR", key inside the raw payload
    data_type = Column(String, nullable=False, default="numeric")
    unit = Column(String, nullable=True)
    expression = Column(String, nullable=True)       # ex: "WFR / (WFR + OFR) * 100"
    ui_order = Column(Integer, nullable=False, default=0)


class Device(Base):
    __tablename__ = "device"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("company.id"), nullable=False, index=True)
    company = relationship("Company")

    hierarchy_id = Column(Integer, ForeignKey("hierarchy.id", ondelete="SET NULL"), nullable=True, index=True)
    hierarchy = relationship("Hierarchy")

    device_type_id = Column(Integer, ForeignKey("device_type.id"), nullable=False)
    device_type = relationship("DeviceType")

    serial_number = Column(String, unique=True, nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSONType, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    latest = relationship("DeviceLatest", uselist=False, back_populates="device")

    @property
    def type_name(self):
        return self.device_type.type_name if self.device_type else None
