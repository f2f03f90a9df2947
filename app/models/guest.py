"""
Guest model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import RsvpStatus

class Guest(Base):
    __tablename__ = "guests"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    tier_id = Column(Integer, ForeignKey("guest_tiers.id"), nullable=True)
    # Tier asked for while its cap was full; resolved by planner promotion
    waitlist_tier_id = Column(Integer, ForeignKey("guest_tiers.id"), nullable=True)
    
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    
    # RSVP
    rsvp_status = Column(String(20), nullable=False, default=RsvpStatus.PENDING.value)
    rsvp_at = Column(DateTime, nullable=True)
    
    # Invite credential
    invite_token = Column(String(64), unique=True, nullable=True, index=True)
    invite_redeemed = Column(Boolean, nullable=False, default=False)
    invite_channel = Column(String(20), nullable=True)
    invite_sent_at = Column(DateTime, nullable=True)
    
    # Gate
    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by = Column(Integer, ForeignKey("ushers.id"), nullable=True)
    is_flagged = Column(Boolean, nullable=False, default=False)
    flag_count = Column(Integer, nullable=False, default=0)
    
    # Seat
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True)
    table_number = Column(Integer, nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Relationships
    event = relationship("Event", back_populates="guests")
    tier = relationship("GuestTier", foreign_keys=[tier_id])
    table = relationship("Table", foreign_keys=[table_id])
    meals = relationship("GuestMeal", back_populates="guest", cascade="all, delete-orphan")
    
    __table_args__ = (
        UniqueConstraint("event_id", "phone", name="uq_guests_event_phone"),
    )
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
