"""
Per-event guest tiers: seating policy, menu access and capacity caps
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import CapacityExceeded, TierNotFound
from app.models import Event, GuestTier
from app.models.enums import MenuAccess, SeatingPolicy
from app.services.repositories import TierRepo

logger = logging.getLogger(__name__)


class TierRegistry:
    """Planner-owned tier definitions plus the bounded guest counter"""

    @staticmethod
    def create_tier(
        db: Session,
        event: Event,
        name: str,
        seating_policy: SeatingPolicy = SeatingPolicy.DYNAMIC,
        menu_access: MenuAccess = MenuAccess.AT_EVENT,
        max_guests: Optional[int] = None,
        table_prefix: Optional[str] = None,
        allow_general_fallback: bool = True,
    ) -> GuestTier:
        tier = GuestTier(
            event_id=event.id,
            name=name.strip(),
            seating_policy=SeatingPolicy(seating_policy).value,
            menu_access=MenuAccess(menu_access).value,
            max_guests=max_guests,
            table_prefix=(table_prefix or None),
            allow_general_fallback=allow_general_fallback,
            guest_count=0,
        )
        db.add(tier)
        db.flush()
        return tier

    @staticmethod
    def get_tier(db: Session, event: Event, tier_id: int) -> GuestTier:
        tier = TierRepo.get(db, event.id, tier_id)
        if not tier:
            raise TierNotFound(f"Tier {tier_id} not found for this event")
        return tier

    @staticmethod
    def list_tiers(db: Session, event: Event) -> List[GuestTier]:
        return TierRepo.list_for_event(db, event.id)

    @staticmethod
    def claim_slot(db: Session, tier: GuestTier) -> None:
        """Count one more guest against the tier cap, atomically"""
        if not TierRepo.claim_slot_if_available(db, tier):
            logger.info(f"Tier {tier.id} ({tier.name}) is at its cap of {tier.max_guests}")
            raise CapacityExceeded("Tier", tier.name)

    @staticmethod
    def release_slot(db: Session, tier_id: Optional[int]) -> None:
        if tier_id is not None:
            TierRepo.release_slot(db, tier_id)

    @staticmethod
    def seating_policy_of(tier: Optional[GuestTier]) -> SeatingPolicy:
        # Untiered guests sit wherever there is room
        if tier is None:
            return SeatingPolicy.DYNAMIC
        return SeatingPolicy(tier.seating_policy)

    @staticmethod
    def menu_access_of(tier: Optional[GuestTier]) -> MenuAccess:
        if tier is None:
            return MenuAccess.AT_EVENT
        return MenuAccess(tier.menu_access)
