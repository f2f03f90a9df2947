"""
Usher and vendor models

Both act through an access token rather than a planner login; ushers may only
touch gate fields on guests, vendors only read aggregates.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from app.core.db import Base
from app.models.enums import UsherRole, VendorRole

class Usher(Base):
    __tablename__ = "ushers"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default=UsherRole.FLOOR.value)
    access_token = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Vendor(Base):
    __tablename__ = "vendors"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=VendorRole.OTHER.value)
    access_token = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
