"""
Invite credential issuance and redemption

Two invite models, one interface. ``InviteCredentialIssuer.for_event`` hands
back the variant for the event and callers only ever call ``issue`` and
``redeem`` on it:

- OpenInvite: a shared code may be viewed any number of times. The event's
  ``invite_code`` registers untiered guests; a tier's own ``invite_code``
  registers into that tier, so the link, not the registrant, picks the tier.
  Each completed registration creates a guest carrying a freshly minted,
  guest-level token that later gates the QR scan.
- ClosedInvite: a token per guest, minted when the guest is created; it is
  redeemed once (``invite_redeemed`` flips exactly once) unless the planner
  resets it.

Redemption, the RSVP transition, the venue place and the PRE_ASSIGNED seat
all happen inside the caller's transaction: either everything commits or
nothing does.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    CredentialAlreadyRedeemed,
    CredentialExpired,
    CredentialMismatch,
    CredentialNotFound,
    DuplicateGuest,
    InvalidGuestData,
    OtpRequired,
)
from app.models import Event, Guest, GuestMeal, GuestTier, MenuItem
from app.models.enums import InviteChannel, InviteModel, MenuAccess, SeatingPolicy
from app.services.repositories import EventRepo, GuestRepo, TierRepo
from app.services.rsvp_lifecycle import GuestState, RSVPLifecycle
from app.services.seating_service import SeatAllocator, WaitlistSignal
from app.services.tier_registry import TierRegistry

logger = logging.getLogger(__name__)


def mint_token() -> str:
    return secrets.token_urlsafe(settings.INVITE_TOKEN_BYTES)


def codes_match(presented: str, expected: Optional[str]) -> bool:
    """Constant-time comparison that also accepts non-ASCII input"""
    if not expected:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


@dataclass(frozen=True)
class Credential:
    value: str
    event_id: int
    model: InviteModel
    guest_id: Optional[int] = None
    tier_id: Optional[int] = None


@dataclass
class RegistrationPayload:
    """What a guest submits on the RSVP page"""
    attending: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    otp_verified: bool = False
    meal_choices: List[int] = field(default_factory=list)


@dataclass
class RedemptionResult:
    guest: Guest
    table_number: Optional[int] = None
    waitlist: Optional[WaitlistSignal] = None

    @property
    def waitlisted(self) -> bool:
        return self.waitlist is not None


class _InviteVariant:
    model: InviteModel

    def __init__(self, event: Event):
        self.event = event

    def issue(self, db: Session, tier: Optional[GuestTier] = None, guest: Optional[Guest] = None) -> Credential:
        raise NotImplementedError

    def redeem(self, db: Session, credential: str, payload: RegistrationPayload,
               now: Optional[datetime] = None) -> RedemptionResult:
        raise NotImplementedError

    # ---- shared steps ----

    def _check_window(self, payload: RegistrationPayload, now: datetime) -> None:
        if self.event.rsvp_deadline is not None and now > self.event.rsvp_deadline:
            raise CredentialExpired(f"RSVP closed at {self.event.rsvp_deadline.isoformat()}")
        if self.event.require_otp and payload.attending and not payload.otp_verified:
            raise OtpRequired("Phone number must be verified before RSVP")

    def _respond(self, db: Session, guest: Guest, payload: RegistrationPayload, now: datetime) -> RedemptionResult:
        """Move the guest out of PENDING and, for PRE_ASSIGNED tiers, seat them now"""
        if not payload.attending:
            RSVPLifecycle.transition(db, guest, GuestState.DECLINED, values={Guest.rsvp_at: now}, now=now)
            return RedemptionResult(guest=guest)

        if not EventRepo.claim_place_if_available(db, self.event):
            signal = WaitlistSignal(guest_id=guest.id, reason=f"Event '{self.event.name}' is at venue capacity")
            RSVPLifecycle.transition(db, guest, GuestState.WAITLISTED, values={Guest.rsvp_at: now}, now=now)
            return RedemptionResult(guest=guest, waitlist=signal)

        if TierRegistry.seating_policy_of(guest.tier) is SeatingPolicy.PRE_ASSIGNED:
            seat = SeatAllocator.assign(db, self.event, guest)
            if isinstance(seat, WaitlistSignal):
                EventRepo.release_place(db, self.event)
                RSVPLifecycle.transition(db, guest, GuestState.WAITLISTED, values={Guest.rsvp_at: now}, now=now)
                return RedemptionResult(guest=guest, waitlist=seat)

        RSVPLifecycle.transition(db, guest, GuestState.CONFIRMED, values={Guest.rsvp_at: now}, now=now)
        _record_meals(db, guest, payload.meal_choices)
        return RedemptionResult(guest=guest, table_number=guest.table_number)


class OpenInvite(_InviteVariant):
    model = InviteModel.OPEN

    def issue(self, db: Session, tier: Optional[GuestTier] = None, guest: Optional[Guest] = None) -> Credential:
        if guest is not None:
            # Guest-level token minted per registration
            if not guest.invite_token:
                guest.invite_token = mint_token()
                db.flush()
            return Credential(value=guest.invite_token, event_id=self.event.id, model=self.model,
                              guest_id=guest.id, tier_id=guest.tier_id)
        if tier is not None:
            if not tier.invite_code:
                tier.invite_code = mint_token()
                db.flush()
            return Credential(value=tier.invite_code, event_id=self.event.id, model=self.model, tier_id=tier.id)
        if not self.event.invite_code:
            self.event.invite_code = mint_token()
            db.flush()
        return Credential(value=self.event.invite_code, event_id=self.event.id, model=self.model)

    def resolve_tier(self, db: Session, credential: str) -> Optional[GuestTier]:
        """Tier a shared code enrols into; None for the event-wide code"""
        if codes_match(credential, self.event.invite_code):
            return None
        for tier in TierRepo.with_invite_codes(db, self.event.id):
            if codes_match(credential, tier.invite_code):
                return tier
        raise CredentialNotFound("Unknown invite link")

    def redeem(self, db: Session, credential: str, payload: RegistrationPayload,
               now: Optional[datetime] = None) -> RedemptionResult:
        now = now or datetime.utcnow()
        tier = self.resolve_tier(db, credential)
        self._check_window(payload, now)
        if not (payload.first_name and payload.last_name and payload.phone):
            raise InvalidGuestData("Registration requires a name and phone number")

        # guest_service imports this module for credential issuance
        from app.services.guest_service import GuestService

        try:
            guest = GuestService.create_guest(
                db, self.event,
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone=payload.phone,
                email=payload.email,
                tier_id=tier.id if tier else None,
                channel=InviteChannel.SELF,
                waitlist_on_full_tier=True,
            )
        except DuplicateGuest as e:
            logger.info(f"Event {self.event.id}: repeat registration for an already registered phone")
            raise CredentialAlreadyRedeemed("Registration already completed") from e

        if not GuestRepo.update_if(db, guest.id, [Guest.invite_redeemed == False], {  # noqa: E712
            Guest.invite_redeemed: True,
        }):
            raise CredentialAlreadyRedeemed("Registration already completed")
        db.refresh(guest)

        if payload.attending and guest.waitlist_tier_id is not None:
            RSVPLifecycle.transition(db, guest, GuestState.WAITLISTED, values={Guest.rsvp_at: now}, now=now)
            return RedemptionResult(guest=guest, waitlist=WaitlistSignal(
                guest_id=guest.id, reason="Requested tier is full"))
        return self._respond(db, guest, payload, now)


class ClosedInvite(_InviteVariant):
    model = InviteModel.CLOSED

    def issue(self, db: Session, tier: Optional[GuestTier] = None, guest: Optional[Guest] = None) -> Credential:
        if guest is None:
            raise ValueError("Closed invites are issued per guest")
        if not guest.invite_token:
            guest.invite_token = mint_token()
            db.flush()
        return Credential(value=guest.invite_token, event_id=self.event.id, model=self.model,
                          guest_id=guest.id, tier_id=guest.tier_id)

    def resolve(self, db: Session, credential: str) -> Guest:
        matches = GuestRepo.find_by_token(db, self.event.id, credential)
        if len(matches) != 1:
            raise CredentialMismatch("Invite token does not match a guest")
        return matches[0]

    def redeem(self, db: Session, credential: str, payload: RegistrationPayload,
               now: Optional[datetime] = None) -> RedemptionResult:
        now = now or datetime.utcnow()
        guest = self.resolve(db, credential)
        self._check_window(payload, now)

        redeemed = GuestRepo.update_if(db, guest.id, [Guest.invite_redeemed == False], {  # noqa: E712
            Guest.invite_redeemed: True,
        })
        if not redeemed:
            logger.info(f"Guest {guest.id}: closed invite replayed")
            raise CredentialAlreadyRedeemed("Invite already used")
        db.refresh(guest)
        if payload.email and not guest.email:
            guest.email = payload.email.strip()
            db.flush()
        return self._respond(db, guest, payload, now)


class InviteCredentialIssuer:
    """Entry point; callers never branch on the invite model themselves"""

    VARIANTS = {
        InviteModel.OPEN: OpenInvite,
        InviteModel.CLOSED: ClosedInvite,
    }

    @staticmethod
    def for_event(event: Event) -> Union[OpenInvite, ClosedInvite]:
        return InviteCredentialIssuer.VARIANTS[InviteModel(event.invite_model)](event)

    @staticmethod
    def issue(db: Session, event: Event, tier: Optional[GuestTier] = None,
              guest: Optional[Guest] = None) -> Credential:
        return InviteCredentialIssuer.for_event(event).issue(db, tier=tier, guest=guest)

    @staticmethod
    def redeem(db: Session, event: Event, credential: str, payload: RegistrationPayload,
               now: Optional[datetime] = None) -> RedemptionResult:
        return InviteCredentialIssuer.for_event(event).redeem(db, credential, payload, now=now)


def _record_meals(db: Session, guest: Guest, meal_choices: List[int]) -> None:
    if not meal_choices:
        return
    if TierRegistry.menu_access_of(guest.tier) is not MenuAccess.PRE_EVENT:
        logger.info(f"Guest {guest.id}: meal pre-order ignored, tier orders at the event")
        return
    items = db.query(MenuItem).filter(
        MenuItem.event_id == guest.event_id,
        MenuItem.id.in_(meal_choices)
    ).all()
    for item in items:
        db.add(GuestMeal(guest_id=guest.id, menu_item_id=item.id, quantity=meal_choices.count(item.id)))
    db.flush()
