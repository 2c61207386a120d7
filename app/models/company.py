from sqlalchemy import Column, Integer, String, DateTime
from app.core.clock import utcnow
from app.db.base import Base

class Company(Base):
    __tablename__ = "company"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    domain_name = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, default=utcnow)
