"""
Repository layer: row lookups and the conditional UPDATEs that guard shared counters.

Every ``*_if`` helper is a single ``UPDATE ... WHERE <guard>`` statement and
returns whether it matched a row. That rowcount is the only arbiter between
concurrent writers (ushers, registrations, the release job); nothing here
takes an in-process lock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import Event, Guest, GuestTier, Table, Usher, Vendor


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` literal inside a LIKE pattern"""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _guarded_update(query, values: Dict[str, Any]) -> bool:
    return query.update(values, synchronize_session=False) == 1


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get_by_id(db: Session, event_id: int) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def get_for_planner(db: Session, event_id: int, planner_id: str) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id, Event.planner_id == planner_id).first()

    @staticmethod
    def get_by_public_code(db: Session, public_code: str) -> Optional[Event]:
        return db.query(Event).filter(Event.public_code == public_code).first()

    @staticmethod
    def get_by_invite_code(db: Session, invite_code: str) -> Optional[Event]:
        return db.query(Event).filter(Event.invite_code == invite_code).first()

    @staticmethod
    def list_by_status(db: Session, statuses: Iterable[str]) -> List[Event]:
        return db.query(Event).filter(Event.status.in_(list(statuses))).all()

    @staticmethod
    def claim_place_if_available(db: Session, event: Event) -> bool:
        """Take one venue place; always succeeds when the venue is unbounded"""
        query = db.query(Event).filter(Event.id == event.id)
        if event.venue_capacity is not None:
            query = query.filter(Event.confirmed_count < Event.venue_capacity)
        return _guarded_update(query, {Event.confirmed_count: Event.confirmed_count + 1})

    @staticmethod
    def release_place(db: Session, event: Event) -> bool:
        query = db.query(Event).filter(Event.id == event.id, Event.confirmed_count > 0)
        return _guarded_update(query, {Event.confirmed_count: Event.confirmed_count - 1})


# -------- Tier repository --------

class TierRepo:
    @staticmethod
    def get(db: Session, event_id: int, tier_id: int) -> Optional[GuestTier]:
        return db.query(GuestTier).filter(GuestTier.event_id == event_id, GuestTier.id == tier_id).first()

    @staticmethod
    def get_by_name(db: Session, event_id: int, name: str) -> Optional[GuestTier]:
        from sqlalchemy import func
        return db.query(GuestTier).filter(
            GuestTier.event_id == event_id,
            func.lower(GuestTier.name) == name.strip().lower()
        ).first()

    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[GuestTier]:
        return db.query(GuestTier).filter(GuestTier.event_id == event_id).order_by(GuestTier.id).all()

    @staticmethod
    def with_invite_codes(db: Session, event_id: int) -> List[GuestTier]:
        return db.query(GuestTier).filter(
            GuestTier.event_id == event_id,
            GuestTier.invite_code.isnot(None),
        ).all()

    @staticmethod
    def claim_slot_if_available(db: Session, tier: GuestTier) -> bool:
        query = db.query(GuestTier).filter(GuestTier.id == tier.id)
        if tier.max_guests is not None:
            query = query.filter(GuestTier.guest_count < GuestTier.max_guests)
        return _guarded_update(query, {GuestTier.guest_count: GuestTier.guest_count + 1})

    @staticmethod
    def release_slot(db: Session, tier_id: int) -> bool:
        query = db.query(GuestTier).filter(GuestTier.id == tier_id, GuestTier.guest_count > 0)
        return _guarded_update(query, {GuestTier.guest_count: GuestTier.guest_count - 1})


# -------- Table repository --------

class TableRepo:
    @staticmethod
    def get(db: Session, event_id: int, table_id: int) -> Optional[Table]:
        return db.query(Table).filter(Table.event_id == event_id, Table.id == table_id).first()

    @staticmethod
    def get_by_number(db: Session, event_id: int, table_number: int) -> Optional[Table]:
        return db.query(Table).filter(Table.event_id == event_id, Table.table_number == table_number).first()

    @staticmethod
    def list_for_event(db: Session, event_id: int) -> List[Table]:
        return db.query(Table).filter(Table.event_id == event_id).order_by(Table.table_number).all()

    @staticmethod
    def max_table_number(db: Session, event_id: int) -> int:
        last = db.query(Table).filter(Table.event_id == event_id).order_by(Table.table_number.desc()).first()
        return last.table_number if last else 0

    @staticmethod
    def reserved_candidates(db: Session, event_id: int, tier: GuestTier) -> List[Table]:
        query = db.query(Table).filter(
            Table.event_id == event_id,
            Table.reserved_for_tier_id == tier.id,
            Table.is_released == False,  # noqa: E712
            Table.current_occupancy < Table.capacity,
        )
        if tier.table_prefix:
            query = query.filter(Table.label.like(f"{_escape_like(tier.table_prefix)}%", escape="\\"))
        return query.order_by(Table.table_number).all()

    @staticmethod
    def general_candidates(db: Session, event_id: int) -> List[Table]:
        return db.query(Table).filter(
            Table.event_id == event_id,
            or_(Table.reserved_for_tier_id.is_(None), Table.is_released == True),  # noqa: E712
            Table.current_occupancy < Table.capacity,
        ).order_by(Table.table_number).all()

    @staticmethod
    def reserved_unreleased(db: Session, event_id: int) -> List[Table]:
        return db.query(Table).populate_existing().filter(
            Table.event_id == event_id,
            Table.reserved_for_tier_id.isnot(None),
            Table.is_released == False,  # noqa: E712
        ).order_by(Table.table_number).all()

    @staticmethod
    def claim_seat_if_eligible(db: Session, table: Table, tier_id: Optional[int], general: bool) -> bool:
        """Increment occupancy only if the table still has room and still fits the pool"""
        query = db.query(Table).filter(Table.id == table.id, Table.current_occupancy < Table.capacity)
        if general:
            query = query.filter(or_(Table.reserved_for_tier_id.is_(None), Table.is_released == True))  # noqa: E712
        else:
            query = query.filter(Table.reserved_for_tier_id == tier_id, Table.is_released == False)  # noqa: E712
        return _guarded_update(query, {Table.current_occupancy: Table.current_occupancy + 1})

    @staticmethod
    def release_seat(db: Session, table_id: int) -> bool:
        query = db.query(Table).filter(Table.id == table_id, Table.current_occupancy > 0)
        return _guarded_update(query, {Table.current_occupancy: Table.current_occupancy - 1})

    @staticmethod
    def mark_released_if_reserved(db: Session, table: Table, now: datetime) -> bool:
        query = db.query(Table).filter(Table.id == table.id, Table.is_released == False)  # noqa: E712
        return _guarded_update(query, {
            Table.is_released: True,
            Table.released_at: now,
            Table.reserved_for_tier_id: None,
        })


# -------- Guest repository --------

class GuestRepo:
    @staticmethod
    def get(db: Session, event_id: int, guest_id: int) -> Optional[Guest]:
        return db.query(Guest).populate_existing().filter(Guest.event_id == event_id, Guest.id == guest_id).first()

    @staticmethod
    def find_by_token(db: Session, event_id: Optional[int], token: str) -> List[Guest]:
        query = db.query(Guest).populate_existing().filter(Guest.invite_token == token)
        if event_id is not None:
            query = query.filter(Guest.event_id == event_id)
        return query.limit(2).all()

    @staticmethod
    def list_for_event(db: Session, event_id: int, search: Optional[str] = None) -> List[Guest]:
        query = db.query(Guest).filter(Guest.event_id == event_id)
        if search:
            query = query.filter(or_(
                Guest.first_name.ilike(f"%{search}%"),
                Guest.last_name.ilike(f"%{search}%"),
            ))
        return query.order_by(Guest.created_at.desc(), Guest.id.desc()).all()

    @staticmethod
    def list_on_table(db: Session, table_id: int) -> List[Guest]:
        return db.query(Guest).populate_existing().filter(Guest.table_id == table_id).order_by(Guest.id).all()

    @staticmethod
    def update_if(db: Session, guest_id: int, guard: Iterable, values: Dict[str, Any]) -> bool:
        query = db.query(Guest).filter(Guest.id == guest_id, *guard)
        values = dict(values)
        values.setdefault(Guest.updated_at, datetime.utcnow())
        return _guarded_update(query, values)

    @staticmethod
    def flag(db: Session, guest_id: int) -> None:
        db.query(Guest).filter(Guest.id == guest_id).update({
            Guest.is_flagged: True,
            Guest.flag_count: Guest.flag_count + 1,
            Guest.updated_at: datetime.utcnow(),
        }, synchronize_session=False)


# -------- Staff repository --------

class StaffRepo:
    @staticmethod
    def usher_by_token(db: Session, token: str) -> Optional[Usher]:
        return db.query(Usher).filter(Usher.access_token == token).first()

    @staticmethod
    def vendor_by_token(db: Session, token: str) -> Optional[Vendor]:
        return db.query(Vendor).filter(Vendor.access_token == token).first()
