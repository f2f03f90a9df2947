"""
Guest-facing API routes
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.db import get_db, transaction
from app.core.errors import CredentialNotFound, EventNotFound
from app.models import Event
from app.models.enums import EventStatus, InviteModel, MenuAccess
from app.schemas.guest import RsvpRequest
from app.services.credentials import InviteCredentialIssuer, RegistrationPayload
from app.services.qr_service import QRService
from app.services.repositories import EventRepo, GuestRepo
from app.services.tier_registry import TierRegistry
from app.utils.security import rate_limit_check, get_client_ip
from app.utils.responses import success_response, rate_limit_error

router = APIRouter()

def _open_event(db: Session, public_code: str) -> Event:
    event = EventRepo.get_by_public_code(db, public_code)
    if not event or event.status in (EventStatus.DRAFT.value, EventStatus.CANCELLED.value):
        raise EventNotFound("Event not found")
    return event

@router.get("/invite/{public_code}")
async def invite_lookup(
    request: Request,
    public_code: str,
    code: str = "",
    db: Session = Depends(get_db)
):
    """What the RSVP page needs before the guest answers"""
    if not rate_limit_check(get_client_ip(request)):
        return rate_limit_error()

    event = _open_event(db, public_code)
    data = {
        "event": {
            "name": event.name,
            "event_start_at": event.event_start_at.isoformat(),
            "invite_model": event.invite_model,
            "require_otp": event.require_otp,
            "rsvp_deadline": event.rsvp_deadline.isoformat() if event.rsvp_deadline else None,
        },
    }

    variant = InviteCredentialIssuer.for_event(event)
    if event.invite_model == InviteModel.CLOSED.value:
        guest = variant.resolve(db, code)
        data["guest"] = {
            "first_name": guest.first_name,
            "rsvp_status": guest.rsvp_status,
            "already_responded": guest.invite_redeemed,
            "tier": guest.tier.name if guest.tier else None,
        }
        data["menu_pre_order"] = TierRegistry.menu_access_of(guest.tier) is MenuAccess.PRE_EVENT
    else:
        # The link decides the tier; registrants never choose one
        tier = variant.resolve_tier(db, code)
        data["tier"] = tier.name if tier else None
        data["menu_pre_order"] = TierRegistry.menu_access_of(tier) is MenuAccess.PRE_EVENT

    data["menu"] = [
        {"id": item.id, "name": item.name, "category": item.category}
        for item in sorted(event.menu_items, key=lambda item: (item.category, item.sort_order))
    ]
    return success_response(message="Invitation found", data=data)

@router.post("/rsvp")
async def submit_rsvp(
    request: Request,
    rsvp: RsvpRequest,
    db: Session = Depends(get_db)
):
    """Redeem an invite: register (OPEN) or answer (CLOSED)"""
    if not rate_limit_check(get_client_ip(request)):
        return rate_limit_error()

    payload = RegistrationPayload(
        attending=rsvp.attending,
        first_name=rsvp.first_name,
        last_name=rsvp.last_name,
        phone=rsvp.phone,
        email=rsvp.email,
        otp_verified=rsvp.otp_verified,
        meal_choices=list(rsvp.meal_choices),
    )
    with transaction(db):
        event = _open_event(db, rsvp.public_code)
        result = InviteCredentialIssuer.redeem(db, event, rsvp.credential, payload)
        guest = result.guest
        data = {
            "rsvp_status": guest.rsvp_status,
            "table_number": result.table_number,
            "waitlisted": result.waitlisted,
            "waitlist_reason": result.waitlist.reason if result.waitlist else None,
            "qr_url": f"/guest/qr/{guest.invite_token}.png" if guest.invite_token and rsvp.attending else None,
        }

    if result.waitlisted:
        message = "You have been added to the waitlist"
    elif rsvp.attending:
        message = "Your attendance is confirmed"
    else:
        message = "Thank you for letting us know"
    return success_response(message=message, data=data)

@router.get("/qr/{token}.png")
async def guest_gate_qr(
    request: Request,
    token: str,
    db: Session = Depends(get_db)
):
    """The QR a guest shows at the gate"""
    if not rate_limit_check(get_client_ip(request)):
        return rate_limit_error()

    matches = GuestRepo.find_by_token(db, None, token)
    if len(matches) != 1:
        raise CredentialNotFound("Unknown guest token")

    return Response(
        content=QRService.generate_guest_qr(token),
        media_type="image/png",
        headers={"Content-Disposition": "inline; filename=invite.png"}
    )
