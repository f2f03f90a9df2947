"""
String enums stored in the database as their values
"""

import enum


class InviteModel(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SeatingPolicy(str, enum.Enum):
    PRE_ASSIGNED = "PRE_ASSIGNED"
    DYNAMIC = "DYNAMIC"


class MenuAccess(str, enum.Enum):
    PRE_EVENT = "PRE_EVENT"
    AT_EVENT = "AT_EVENT"


class RsvpStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    WAITLISTED = "WAITLISTED"
    NO_SHOW = "NO_SHOW"


class InviteChannel(str, enum.Enum):
    MANUAL = "MANUAL"
    IMPORT = "IMPORT"
    SELF = "SELF"
    WHATSAPP = "WHATSAPP"


class MenuCategory(str, enum.Enum):
    APPETIZER = "APPETIZER"
    MAIN = "MAIN"
    DESSERT = "DESSERT"
    DRINK = "DRINK"
    SPECIAL = "SPECIAL"


class UsherRole(str, enum.Enum):
    FLOOR = "FLOOR"
    GATE = "GATE"
    SUPERVISOR = "SUPERVISOR"


class VendorRole(str, enum.Enum):
    CATERER = "CATERER"
    DECORATOR = "DECORATOR"
    PHOTOGRAPHER = "PHOTOGRAPHER"
    VIDEOGRAPHER = "VIDEOGRAPHER"
    LIVE_BAND = "LIVE_BAND"
    HYPEMAN = "HYPEMAN"
    SECURITY = "SECURITY"
    MEDIA = "MEDIA"
    OTHER = "OTHER"
