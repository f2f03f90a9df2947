"""
Database models package
"""

from .event import Event
from .tier import GuestTier
from .table import Table
from .guest import Guest
from .menu import MenuItem, GuestMeal
from .staff import Usher, Vendor

__all__ = ["Event", "GuestTier", "Table", "Guest", "MenuItem", "GuestMeal", "Usher", "Vendor"]
