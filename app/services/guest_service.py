"""
Guest creation path and planner overrides

Manual entry, spreadsheet import and OPEN self-registration all create guests
through ``GuestService.create_guest`` so the tier cap and credential issuance
cannot be bypassed.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    CapacityExceeded,
    DuplicateGuest,
    IllegalTransition,
    InvalidGuestData,
)
from app.models import Event, Guest, GuestMeal
from app.models.enums import InviteChannel, InviteModel, RsvpStatus, SeatingPolicy
from app.services.credentials import InviteCredentialIssuer
from app.services.repositories import EventRepo, GuestRepo
from app.services.rsvp_lifecycle import GuestState, RSVPLifecycle, state_of
from app.services.seating_service import SeatAllocator, WaitlistSignal
from app.services.tier_registry import TierRegistry
from app.utils.phone import normalize_phone_number

logger = logging.getLogger(__name__)


class GuestService:
    """Planner-side guest operations"""

    @staticmethod
    def create_guest(
        db: Session,
        event: Event,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        tier_id: Optional[int] = None,
        channel: InviteChannel = InviteChannel.MANUAL,
        waitlist_on_full_tier: bool = False,
    ) -> Guest:
        """Insert a guest, counting them against their tier and issuing their credential.

        A full tier raises CapacityExceeded naming the tier, unless
        ``waitlist_on_full_tier`` is set (self-registration): the guest is then
        created without a tier and remembers the one they asked for.
        """
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name or not last_name:
            raise InvalidGuestData("First name and last name are required")

        phone = normalize_phone_number(phone) if phone else None
        if phone and db.query(Guest.id).filter(Guest.event_id == event.id, Guest.phone == phone).first():
            raise DuplicateGuest(f"A guest with phone {phone} already exists")

        tier = TierRegistry.get_tier(db, event, tier_id) if tier_id is not None else None
        waitlist_tier_id = None
        if tier is not None:
            try:
                TierRegistry.claim_slot(db, tier)
            except CapacityExceeded:
                if not waitlist_on_full_tier:
                    raise
                waitlist_tier_id, tier = tier.id, None

        guest = Guest(
            event_id=event.id,
            tier_id=tier.id if tier else None,
            waitlist_tier_id=waitlist_tier_id,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            email=(email or "").strip() or None,
            rsvp_status=RsvpStatus.PENDING.value,
            invite_channel=InviteChannel(channel).value,
        )
        db.add(guest)
        try:
            db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent insert of the same phone
            raise DuplicateGuest(f"A guest with phone {phone} already exists") from e

        if event.invite_model == InviteModel.CLOSED.value or channel == InviteChannel.SELF:
            InviteCredentialIssuer.issue(db, event, tier=tier, guest=guest)

        logger.info(f"Guest {guest.id} created for event {event.id} via {guest.invite_channel}")
        return guest

    @staticmethod
    def list_guests(db: Session, event: Event, search: Optional[str] = None) -> List[Guest]:
        return GuestRepo.list_for_event(db, event.id, search)

    @staticmethod
    def remove_guest(db: Session, event: Event, guest: Guest, override: bool = False) -> None:
        """Delete a guest; checked-in guests stay unless the planner overrides"""
        if guest.checked_in and not override:
            raise IllegalTransition(GuestState.CHECKED_IN.value, "REMOVED")

        SeatAllocator.release_seat(db, guest)
        if guest.rsvp_status == RsvpStatus.CONFIRMED.value:
            EventRepo.release_place(db, event)
        TierRegistry.release_slot(db, guest.tier_id)

        logger.warning(f"Guest {guest.id} removed from event {event.id} "
                       f"(state={state_of(guest).value}, override={override})")
        db.delete(guest)
        db.flush()

    @staticmethod
    def reassign_table(db: Session, event: Event, guest: Guest, table_number: int):
        return SeatAllocator.reassign(db, event, guest, table_number)

    @staticmethod
    def promote(db: Session, event: Event, guest: Guest) -> Guest:
        """Planner-triggered WAITLISTED -> CONFIRMED"""
        if state_of(guest) is not GuestState.WAITLISTED:
            raise IllegalTransition(state_of(guest).value, GuestState.CONFIRMED.value)

        if guest.waitlist_tier_id is not None:
            tier = TierRegistry.get_tier(db, event, guest.waitlist_tier_id)
            TierRegistry.claim_slot(db, tier)
            GuestRepo.update_if(db, guest.id, [Guest.tier_id.is_(None)], {
                Guest.tier_id: tier.id,
                Guest.waitlist_tier_id: None,
            })
            db.refresh(guest)

        if not EventRepo.claim_place_if_available(db, event):
            raise CapacityExceeded("Venue", event.name)

        if TierRegistry.seating_policy_of(guest.tier) is SeatingPolicy.PRE_ASSIGNED:
            seat = SeatAllocator.assign(db, event, guest)
            if isinstance(seat, WaitlistSignal):
                raise CapacityExceeded("Tier tables", guest.tier.name)

        return RSVPLifecycle.transition(db, guest, GuestState.CONFIRMED)

    @staticmethod
    def reset_credential(db: Session, event: Event, guest: Guest) -> Guest:
        """Let a guest RSVP again: back to PENDING with an unredeemed credential"""
        if guest.checked_in:
            raise IllegalTransition(GuestState.CHECKED_IN.value, GuestState.PENDING.value)

        SeatAllocator.release_seat(db, guest)
        if guest.rsvp_status == RsvpStatus.CONFIRMED.value:
            EventRepo.release_place(db, event)
        db.query(GuestMeal).filter(GuestMeal.guest_id == guest.id).delete(synchronize_session=False)

        if guest.rsvp_status == RsvpStatus.PENDING.value:
            GuestRepo.update_if(db, guest.id, [Guest.checked_in == False], {  # noqa: E712
                Guest.invite_redeemed: False,
                Guest.rsvp_at: None,
            })
            db.refresh(guest)
        else:
            RSVPLifecycle.override_to_pending(db, guest, values={
                Guest.invite_redeemed: False,
                Guest.rsvp_at: None,
            })
        logger.info(f"Guest {guest.id}: credential reset by planner")
        return guest
