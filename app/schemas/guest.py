"""
Guest-related Pydantic schemas
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr

class GuestCreate(BaseModel):
    """Schema for creating a guest"""
    first_name: str
    last_name: str
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    tier_id: Optional[int] = None

class GuestReassign(BaseModel):
    """Planner move to another table"""
    table_number: int

class GuestResponse(BaseModel):
    """Guest response schema (planner view)"""
    id: int
    first_name: str
    last_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    tier_id: Optional[int] = None
    waitlist_tier_id: Optional[int] = None
    rsvp_status: str
    rsvp_at: Optional[datetime] = None
    invite_channel: Optional[str] = None
    invite_sent_at: Optional[datetime] = None
    checked_in: bool
    checked_in_at: Optional[datetime] = None
    is_flagged: bool
    flag_count: int
    table_number: Optional[int] = None
    
    class Config:
        from_attributes = True

class RsvpRequest(BaseModel):
    """Guest RSVP through an invite link or personal token"""
    public_code: str
    credential: str
    attending: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    otp_verified: bool = False
    meal_choices: List[int] = []

class CheckInRequest(BaseModel):
    """Usher scan of a guest QR"""
    token: str

class SendInvitesRequest(BaseModel):
    """Guests to message with their invite link"""
    guest_ids: List[int]
