"""
Event, tier and table Pydantic schemas
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from app.models.enums import (
    EventStatus, InviteModel, MenuAccess, MenuCategory, SeatingPolicy, UsherRole, VendorRole,
)

class TierCreate(BaseModel):
    """Schema for creating a guest tier"""
    name: str
    seating_policy: SeatingPolicy = SeatingPolicy.DYNAMIC
    menu_access: MenuAccess = MenuAccess.AT_EVENT
    max_guests: Optional[int] = Field(None, ge=1)
    table_prefix: Optional[str] = None
    allow_general_fallback: bool = True

class TierResponse(BaseModel):
    """Tier response"""
    id: int
    name: str
    seating_policy: str
    menu_access: str
    max_guests: Optional[int] = None
    table_prefix: Optional[str] = None
    allow_general_fallback: bool
    invite_code: Optional[str] = None
    guest_count: int
    
    class Config:
        from_attributes = True

class EventCreate(BaseModel):
    """Schema for creating an event"""
    name: str
    event_start_at: datetime
    invite_model: InviteModel = InviteModel.OPEN
    require_otp: bool = False
    rsvp_deadline: Optional[datetime] = None
    release_reserved_after_minutes: Optional[int] = Field(None, ge=0)
    venue_capacity: Optional[int] = Field(None, ge=1)
    status: EventStatus = EventStatus.DRAFT
    tiers: List[TierCreate] = []

class EventResponse(BaseModel):
    """Basic event response"""
    id: int
    name: str
    public_code: str
    status: str
    event_start_at: datetime
    invite_model: str
    invite_code: Optional[str] = None
    require_otp: bool
    rsvp_deadline: Optional[datetime] = None
    release_reserved_after_minutes: Optional[int] = None
    venue_capacity: Optional[int] = None
    confirmed_count: int
    created_at: datetime
    
    class Config:
        from_attributes = True

class EventDetail(EventResponse):
    """Detailed event response with tiers"""
    tiers: List[TierResponse] = []

class TableCreate(BaseModel):
    """Schema for adding one table"""
    table_number: int = Field(..., ge=1)
    label: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    reserved_for_tier_id: Optional[int] = None

class BulkTableCreate(BaseModel):
    """Schema for adding numbered tables in bulk"""
    count: int = Field(..., ge=1, le=100)
    seats_per_table: Optional[int] = Field(None, ge=1)
    reserved_for_tier_id: Optional[int] = None
    label_prefix: Optional[str] = None

class TableResponse(BaseModel):
    """Table response"""
    id: int
    table_number: int
    label: Optional[str] = None
    capacity: int
    current_occupancy: int
    reserved_for_tier_id: Optional[int] = None
    is_released: bool
    
    class Config:
        from_attributes = True

class MenuItemCreate(BaseModel):
    """Schema for adding a menu item"""
    name: str
    category: MenuCategory = MenuCategory.MAIN
    description: Optional[str] = None

class UsherCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    role: UsherRole = UsherRole.FLOOR

class VendorCreate(BaseModel):
    name: str
    role: VendorRole = VendorRole.OTHER
