"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .guest import *
from .aggregate import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "Pagination",
    "EventCreate",
    "EventResponse",
    "EventDetail",
    "TierCreate",
    "TierResponse",
    "TableCreate",
    "BulkTableCreate",
    "TableResponse",
    "MenuItemCreate",
    "UsherCreate",
    "VendorCreate",
    "GuestCreate",
    "GuestReassign",
    "GuestResponse",
    "RsvpRequest",
    "CheckInRequest",
    "SendInvitesRequest",
    "AggregateView",
    "TableFill",
    "MealTally",
]
