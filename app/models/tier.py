"""
Guest tier model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import MenuAccess, SeatingPolicy

class GuestTier(Base):
    __tablename__ = "guest_tiers"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    seating_policy = Column(String(20), nullable=False, default=SeatingPolicy.DYNAMIC.value)
    menu_access = Column(String(20), nullable=False, default=MenuAccess.AT_EVENT.value)
    max_guests = Column(Integer, nullable=True)
    table_prefix = Column(String(20), nullable=True)
    allow_general_fallback = Column(Boolean, nullable=False, default=True)
    # OPEN events: shared registration code that enrols into this tier
    invite_code = Column(String(64), unique=True, nullable=True)
    
    # Guests referencing this tier; only moved by conditional UPDATE
    guest_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    event = relationship("Event", back_populates="tiers")
    
    __table_args__ = (
        CheckConstraint("guest_count >= 0", name="ck_guest_tiers_count_non_negative"),
    )
