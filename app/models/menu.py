"""
Menu item and guest pre-order models
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base
from app.models.enums import MenuCategory

class MenuItem(Base):
    __tablename__ = "menu_items"
    
    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    category = Column(String(20), nullable=False, default=MenuCategory.MAIN.value)
    name = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    
    event = relationship("Event", back_populates="menu_items")


class GuestMeal(Base):
    __tablename__ = "guest_meals"
    
    id = Column(Integer, primary_key=True, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    
    guest = relationship("Guest", back_populates="meals")
    menu_item = relationship("MenuItem")
    
    __table_args__ = (
        UniqueConstraint("guest_id", "menu_item_id", name="uq_guest_meals_item"),
    )
