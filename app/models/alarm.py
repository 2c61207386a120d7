from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.db.base import Base, JSONType

class AlarmType(Base):
    __tablename__ = "alarm_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    severity = Column(String, nullable=False)       # Critical, Major, Minor, Warning


class AlarmStatus(Base):
    __tablename__ = "alarm_status_type"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)   # Active, Acknowledged, Resolved, Unacked
    description = Column(String, nullable=True)


class DeviceAlarm(Base):
    __tablename__ = "device_alarms"

    id = Column(Integer, primary_key=True, index=True)
    device_serial = Column(String, ForeignKey("device.serial_number"), nullable=False, index=True)
    device = relationship("Device")

    alarm_type_id = Column(Integer, ForeignKey("alarm_types.id"), nullable=False)
    alarm_type = relationship("AlarmType")

    status_id = Column(Integer, ForeignKey("alarm_status_type.id"), nullable=False)
    status = relationship("AlarmStatus")

    message = Column(String(500), nullable=True)
    meta = Column("metadata", JSONType, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    acknowledged_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
