"""
Seat allocation under the reserved / general pool split
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from app.core.errors import CapacityExceeded, TableNotEligible, TableNotFound
from app.models import Event, Guest, GuestTier, Table
from app.models.enums import SeatingPolicy
from app.services.repositories import GuestRepo, TableRepo
from app.services.tier_registry import TierRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitlistSignal:
    """No seat could be claimed; the caller decides what waiting means"""
    guest_id: int
    reason: str


class SeatAllocator:
    """Claims and frees table seats.

    A claim is two guarded UPDATEs in the caller's transaction: bump the
    table's occupancy while it is still below capacity and still in the
    right pool, then bind the guest while they still have no table. When a
    candidate loses the race for its last seat the next table in
    ``table_number`` order is tried.
    """

    @staticmethod
    def assign(
        db: Session,
        event: Event,
        guest: Guest,
        at_gate: bool = False,
    ) -> Optional[Union[Table, WaitlistSignal]]:
        """Seat a guest; None means the guest is DYNAMIC and the gate will seat them"""
        if guest.table_id is not None:
            return TableRepo.get(db, event.id, guest.table_id)

        tier: Optional[GuestTier] = guest.tier
        policy = TierRegistry.seating_policy_of(tier)

        if policy is SeatingPolicy.DYNAMIC and not at_gate:
            return None

        if policy is SeatingPolicy.PRE_ASSIGNED:
            table = SeatAllocator._claim_first(db, guest, TableRepo.reserved_candidates(db, event.id, tier), tier.id, general=False)
            if table:
                return table
            if not tier.allow_general_fallback:
                logger.info(f"Guest {guest.id}: no reserved seat left for tier {tier.name}, general pool forbidden")
                return WaitlistSignal(guest_id=guest.id, reason=f"Tier '{tier.name}' has no reserved seat left")

        table = SeatAllocator._claim_first(db, guest, TableRepo.general_candidates(db, event.id), None, general=True)
        if table:
            return table

        logger.info(f"Guest {guest.id}: general pool exhausted for event {event.id}")
        return WaitlistSignal(guest_id=guest.id, reason="No open seat in the general pool")

    @staticmethod
    def _claim_first(
        db: Session,
        guest: Guest,
        candidates: List[Table],
        tier_id: Optional[int],
        general: bool,
    ) -> Optional[Table]:
        for table in candidates:
            if not TableRepo.claim_seat_if_eligible(db, table, tier_id, general):
                continue
            bound = GuestRepo.update_if(db, guest.id, [Guest.table_id.is_(None)], {
                Guest.table_id: table.id,
                Guest.table_number: table.table_number,
            })
            if not bound:
                # Someone else seated this guest meanwhile; give the seat back
                TableRepo.release_seat(db, table.id)
                db.refresh(guest)
                return TableRepo.get(db, guest.event_id, guest.table_id)
            db.refresh(guest)
            db.refresh(table)
            logger.info(f"Guest {guest.id} seated at table {table.table_number} ({table.current_occupancy}/{table.capacity})")
            return table
        return None

    @staticmethod
    def release_seat(db: Session, guest: Guest) -> Optional[int]:
        """Unbind a guest from their table; returns the freed table id"""
        table_id = guest.table_id
        if table_id is None:
            return None
        unbound = GuestRepo.update_if(db, guest.id, [Guest.table_id == table_id], {
            Guest.table_id: None,
            Guest.table_number: None,
        })
        if unbound:
            TableRepo.release_seat(db, table_id)
        db.refresh(guest)
        return table_id if unbound else None

    @staticmethod
    def reassign(db: Session, event: Event, guest: Guest, table_number: int) -> Table:
        """Planner move to a specific table"""
        table = TableRepo.get_by_number(db, event.id, table_number)
        if not table:
            raise TableNotFound(f"Table {table_number} not found")
        if guest.table_id == table.id:
            return table
        if table.is_reserved and table.reserved_for_tier_id != guest.tier_id:
            raise TableNotEligible(f"Table {table_number} is reserved for another tier")

        if not TableRepo.claim_seat_if_eligible(db, table, table.reserved_for_tier_id, general=not table.is_reserved):
            raise CapacityExceeded("Table", str(table_number))

        SeatAllocator.release_seat(db, guest)
        if not GuestRepo.update_if(db, guest.id, [Guest.table_id.is_(None)], {
            Guest.table_id: table.id,
            Guest.table_number: table.table_number,
        }):
            TableRepo.release_seat(db, table.id)
            raise CapacityExceeded("Guest seat", guest.full_name)
        db.refresh(guest)
        db.refresh(table)
        logger.info(f"Guest {guest.id} moved to table {table_number} by planner")
        return table

    @staticmethod
    def get_table_guests(db: Session, table: Table) -> List[dict]:
        """Guests bound to a table, for planner views"""
        return [
            {
                "id": guest.id,
                "name": guest.full_name,
                "rsvp_status": guest.rsvp_status,
                "checked_in": guest.checked_in,
            }
            for guest in GuestRepo.list_on_table(db, table.id)
        ]
