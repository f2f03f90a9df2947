"""
Table model
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base

class Table(Base):
    __tablename__ = "tables"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    table_number = Column(Integer, nullable=False)
    label = Column(String(100), nullable=True)
    capacity = Column(Integer, nullable=False)
    
    # Derived from seat claims; written only by SeatAllocator and the release job
    current_occupancy = Column(Integer, nullable=False, default=0)
    
    reserved_for_tier_id = Column(Integer, ForeignKey("guest_tiers.id"), nullable=True)
    is_released = Column(Boolean, nullable=False, default=False)
    released_at = Column(DateTime, nullable=True)
    
    # Relationships
    event = relationship("Event", back_populates="tables")
    reserved_for_tier = relationship("GuestTier")
    
    __table_args__ = (
        UniqueConstraint("event_id", "table_number", name="uq_tables_event_number"),
        CheckConstraint("current_occupancy <= capacity", name="ck_tables_occupancy_le_capacity"),
        CheckConstraint("current_occupancy >= 0", name="ck_tables_occupancy_non_negative"),
    )
    
    @property
    def is_reserved(self) -> bool:
        return self.reserved_for_tier_id is not None and not self.is_released
    
    @property
    def fill_percentage(self) -> float:
        if not self.capacity:
            return 0.0
        return round(100.0 * self.current_occupancy / self.capacity, 1)
