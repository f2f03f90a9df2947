"""
Vendor aggregate schemas (numbers only)
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

class TableFill(BaseModel):
    """Fill level of one table"""
    table_number: int
    label: Optional[str] = None
    capacity: int
    occupied: int
    fill_percentage: float
    reserved: bool

class MealTally(BaseModel):
    """Pre-ordered portions of one menu item"""
    menu_item_id: int
    category: str
    name: str
    count: int

class AggregateView(BaseModel):
    """Headcounts and tallies a vendor may see"""
    event_name: str
    event_start_at: datetime
    vendor_role: str
    total_guests: int
    confirmed: int
    pending: int
    declined: int
    waitlisted: int
    no_show: int
    checked_in: int
    tables: List[TableFill] = []
    meal_tallies: Optional[List[MealTally]] = None
