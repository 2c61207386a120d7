from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.db.base import Base, JSONType

class DeviceData(Base):
    """Append-only raw reading. ``created_at`` is the reading timestamp."""

    __tablename__ = "device_data"
    __table_args__ = (
        Index("ix_device_data_device_created", "device_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(Integer, ForeignKey("device.id", ondelete="CASCADE"), nullable=False)
    serial_number = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    longitude = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    data = Column(JSONType, nullable=False)         # ex: {"OFR": 120.5, "WFR": 30.1, "PressureAvg": 12.3}


class DeviceLatest(Base):
    """Current value per device; the reading with the highest timestamp wins."""

    __tablename__ = "device_latest"

    device_id = Column(Integer, ForeignKey("device.id", ondelete="CASCADE"), primary_key=True)
    device = relationship("Device", back_populates="latest")

    serial_number = Column(String, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=False)
    received_at = Column(DateTime, nullable=False, default=utcnow)
    longitude = Column(Float, nullable=True)
    latitude = Column(Float, nullable=True)
    data = Column(JSONType, nullable=False)
