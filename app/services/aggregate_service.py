"""
PII-free aggregates for vendors

Everything here is recomputed from the current rows on every call; there is
no cache to invalidate.
"""

from typing import Dict, List

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.models import Event, Guest, GuestMeal, MenuItem, Table
from app.models.enums import RsvpStatus, VendorRole
from app.schemas.aggregate import AggregateView, MealTally, TableFill

# Pre-orders from these guests are not cooked
NOT_EATING = [RsvpStatus.DECLINED.value, RsvpStatus.NO_SHOW.value]


class VendorAggregateProjector:
    """Counts only: never names, phone numbers or emails"""

    @staticmethod
    def project(db: Session, event: Event, vendor_role: VendorRole) -> AggregateView:
        status_counts = VendorAggregateProjector._status_counts(db, event)
        checked_in = db.query(func.count(Guest.id)).filter(
            Guest.event_id == event.id,
            Guest.checked_in == True  # noqa: E712
        ).scalar() or 0

        view = AggregateView(
            event_name=event.name,
            event_start_at=event.event_start_at,
            vendor_role=VendorRole(vendor_role).value,
            total_guests=sum(status_counts.values()),
            confirmed=status_counts.get(RsvpStatus.CONFIRMED.value, 0),
            pending=status_counts.get(RsvpStatus.PENDING.value, 0),
            declined=status_counts.get(RsvpStatus.DECLINED.value, 0),
            waitlisted=status_counts.get(RsvpStatus.WAITLISTED.value, 0),
            no_show=status_counts.get(RsvpStatus.NO_SHOW.value, 0),
            checked_in=checked_in,
            tables=VendorAggregateProjector._table_fill(db, event),
        )
        if VendorRole(vendor_role) is VendorRole.CATERER:
            view.meal_tallies = VendorAggregateProjector._meal_tallies(db, event)
        return view

    @staticmethod
    def _status_counts(db: Session, event: Event) -> Dict[str, int]:
        rows = db.query(Guest.rsvp_status, func.count(Guest.id)).filter(
            Guest.event_id == event.id
        ).group_by(Guest.rsvp_status).all()
        return {status: count for status, count in rows}

    @staticmethod
    def _table_fill(db: Session, event: Event) -> List[TableFill]:
        tables = db.query(Table).populate_existing().filter(Table.event_id == event.id).order_by(Table.table_number).all()
        return [
            TableFill(
                table_number=table.table_number,
                label=table.label,
                capacity=table.capacity,
                occupied=table.current_occupancy,
                fill_percentage=table.fill_percentage,
                reserved=table.is_reserved,
            )
            for table in tables
        ]

    @staticmethod
    def _meal_tallies(db: Session, event: Event) -> List[MealTally]:
        rows = db.query(
            MenuItem.id,
            MenuItem.category,
            MenuItem.name,
            func.coalesce(func.sum(case(
                (Guest.rsvp_status.notin_(NOT_EATING), GuestMeal.quantity), else_=0
            )), 0),
        ).outerjoin(
            GuestMeal, GuestMeal.menu_item_id == MenuItem.id
        ).outerjoin(
            Guest, Guest.id == GuestMeal.guest_id
        ).filter(
            MenuItem.event_id == event.id
        ).group_by(
            MenuItem.id, MenuItem.category, MenuItem.name, MenuItem.sort_order
        ).order_by(MenuItem.category, MenuItem.sort_order, MenuItem.id).all()

        return [
            MealTally(menu_item_id=item_id, category=category, name=name, count=int(count))
            for item_id, category, name, count in rows
        ]
