"""
Gate API routes for ushers
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.db import get_db, transaction
from app.core.errors import EventNotFound
from app.models import Usher
from app.schemas.guest import CheckInRequest
from app.services.checkin_service import CheckInResult, CheckInValidator
from app.services.guest_service import GuestService
from app.services.repositories import EventRepo
from app.api.ws import websocket_manager
from app.utils.security import verify_usher
from app.utils.responses import success_response, error_response

router = APIRouter()

checkin_validator = CheckInValidator(websocket_manager)

def _result_data(result: CheckInResult) -> dict:
    guest = result.guest
    return {
        "admitted": result.admitted,
        "reason": result.reason.value if result.reason else None,
        "table_number": result.table_number,
        "seat_waitlisted": result.seat_waitlisted,
        "guest": {
            "id": guest.id,
            "name": guest.full_name,
            "tier": guest.tier.name if guest.tier else None,
            "is_flagged": guest.is_flagged,
            "flag_count": guest.flag_count,
        } if guest else None,
    }

async def _respond(event, result: CheckInResult):
    await checkin_validator.broadcast_check_in(event, result)
    if result.admitted:
        return success_response(message="Guest admitted", data=_result_data(result))
    return error_response(
        message="Entry denied",
        error_code=result.reason.value.lower(),
        details=_result_data(result),
        status_code=409
    )

@router.post("/checkin")
async def scan_check_in(
    body: CheckInRequest,
    db: Session = Depends(get_db),
    usher: Usher = Depends(verify_usher)
):
    """Admit the holder of a scanned QR token"""
    with transaction(db):
        event = EventRepo.get_by_id(db, usher.event_id)
        if not event:
            raise EventNotFound("Event not found")
        result = checkin_validator.check_in(db, event, body.token, usher=usher)
    return await _respond(event, result)

@router.post("/checkin/{guest_id}")
async def manual_check_in(
    guest_id: int,
    db: Session = Depends(get_db),
    usher: Usher = Depends(verify_usher)
):
    """Admit a guest found by name at the gate"""
    with transaction(db):
        event = EventRepo.get_by_id(db, usher.event_id)
        if not event:
            raise EventNotFound("Event not found")
        result = checkin_validator.check_in_by_id(db, event, guest_id, usher=usher)
    return await _respond(event, result)

@router.get("/guests")
async def gate_guest_search(
    search: Optional[str] = Query(None, min_length=2),
    db: Session = Depends(get_db),
    usher: Usher = Depends(verify_usher)
):
    """Name search for guests who arrive without their QR"""
    event = EventRepo.get_by_id(db, usher.event_id)
    if not event:
        raise EventNotFound("Event not found")
    guests = GuestService.list_guests(db, event, search)[:50]
    return success_response(
        message="Guests retrieved",
        data=[
            {
                "id": guest.id,
                "name": guest.full_name,
                "rsvp_status": guest.rsvp_status,
                "checked_in": guest.checked_in,
                "table_number": guest.table_number,
            }
            for guest in guests
        ]
    )
