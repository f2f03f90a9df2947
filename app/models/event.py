"""
Event model
"""

from datetime import datetime, timedelta
from sqlalchemy import Column, Integer, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import EventStatus, InviteModel

class Event(Base):
    __tablename__ = "events"
    
    id = Column(Integer, primary_key=True, index=True)
    planner_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    public_code = Column(String(50), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=EventStatus.DRAFT.value)
    event_start_at = Column(DateTime, nullable=False)
    
    # Admission policy
    invite_model = Column(String(10), nullable=False, default=InviteModel.OPEN.value)
    invite_code = Column(String(64), unique=True, nullable=True)  # shared OPEN credential
    require_otp = Column(Boolean, nullable=False, default=False)
    rsvp_deadline = Column(DateTime, nullable=True)
    release_reserved_after_minutes = Column(Integer, nullable=True)
    
    # Venue places held by confirmed guests; bounded by venue_capacity when set
    venue_capacity = Column(Integer, nullable=True)
    confirmed_count = Column(Integer, nullable=False, default=0)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    
    # Relationships
    tiers = relationship("GuestTier", back_populates="event", cascade="all, delete-orphan")
    tables = relationship("Table", back_populates="event", cascade="all, delete-orphan")
    guests = relationship("Guest", back_populates="event", cascade="all, delete-orphan")
    menu_items = relationship("MenuItem", back_populates="event", cascade="all, delete-orphan")
    ushers = relationship("Usher", cascade="all, delete-orphan")
    vendors = relationship("Vendor", cascade="all, delete-orphan")
    
    __table_args__ = (
        CheckConstraint("confirmed_count >= 0", name="ck_events_confirmed_non_negative"),
    )
    
    @property
    def release_deadline(self):
        """Instant after which unclaimed reserved tables go back to the general pool"""
        if self.release_reserved_after_minutes is None:
            return None
        return self.event_start_at + timedelta(minutes=self.release_reserved_after_minutes)
