"""
Gate check-in with replay detection and real-time broadcasting
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.api.ws import WebSocketManager
from app.models import Event, Guest, Usher
from app.services.repositories import GuestRepo
from app.services.rsvp_lifecycle import GuestState, RSVPLifecycle, state_of
from app.services.seating_service import SeatAllocator, WaitlistSignal

logger = logging.getLogger(__name__)


class DenialReason(str, enum.Enum):
    ALREADY_USED = "ALREADY_USED"
    DECLINED = "DECLINED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"


@dataclass
class CheckInResult:
    admitted: bool
    guest: Optional[Guest] = None
    reason: Optional[DenialReason] = None
    table_number: Optional[int] = None
    seat_waitlisted: bool = False

    @property
    def is_gatecrasher_alert(self) -> bool:
        return not self.admitted and self.reason is not None


class CheckInValidator:
    """Admits guests at the gate.

    Admission is one compare-and-set on ``checked_in``: of any number of
    concurrent scans of the same token exactly one flips it, every other
    scan is a replay and flags the guest.
    """

    def __init__(self, websocket_manager: Optional[WebSocketManager] = None):
        self.websocket_manager = websocket_manager

    def check_in(self, db: Session, event: Event, token: str, usher: Optional[Usher] = None,
                 now: Optional[datetime] = None) -> CheckInResult:
        """Resolve a scanned token to exactly one guest and admit them"""
        matches = GuestRepo.find_by_token(db, event.id, token) if token else []
        if len(matches) != 1:
            logger.warning(f"[gate] event={event.id} usher={usher.id if usher else None}: unknown token scanned")
            return CheckInResult(admitted=False, reason=DenialReason.INVALID_CREDENTIAL)
        return self.admit(db, event, matches[0], usher=usher, now=now)

    def check_in_by_id(self, db: Session, event: Event, guest_id: int, usher: Optional[Usher] = None,
                       now: Optional[datetime] = None) -> CheckInResult:
        """Manual lookup at the gate for guests without a QR token"""
        guest = GuestRepo.get(db, event.id, guest_id)
        if not guest:
            return CheckInResult(admitted=False, reason=DenialReason.INVALID_CREDENTIAL)
        return self.admit(db, event, guest, usher=usher, now=now)

    def admit(self, db: Session, event: Event, guest: Guest, usher: Optional[Usher] = None,
              now: Optional[datetime] = None) -> CheckInResult:
        now = now or datetime.utcnow()
        won = RSVPLifecycle.apply(db, guest, GuestState.CHECKED_IN, now=now, values={
            Guest.checked_in_by: usher.id if usher else None,
        })

        if not won:
            reason = DenialReason.DECLINED if state_of(guest) is GuestState.DECLINED else DenialReason.ALREADY_USED
            GuestRepo.flag(db, guest.id)
            db.refresh(guest)
            logger.warning(f"[gate] event={event.id} guest={guest.id} usher={usher.id if usher else None}: "
                           f"denied {reason.value}, flag_count={guest.flag_count}")
            return CheckInResult(admitted=False, guest=guest, reason=reason, table_number=guest.table_number)

        seat_waitlisted = False
        if guest.table_id is None:
            seat = SeatAllocator.assign(db, event, guest, at_gate=True)
            seat_waitlisted = isinstance(seat, WaitlistSignal)
            if seat_waitlisted:
                logger.warning(f"[gate] event={event.id} guest={guest.id}: admitted without a seat")

        logger.info(f"[gate] event={event.id} guest={guest.id} usher={usher.id if usher else None}: admitted")
        return CheckInResult(admitted=True, guest=guest, table_number=guest.table_number,
                             seat_waitlisted=seat_waitlisted)

    async def broadcast_check_in(self, event: Event, result: CheckInResult):
        """Tell connected ushers and the planner dashboard; call after commit"""
        if not self.websocket_manager:
            return
        guest = result.guest
        message = {
            "type": "checkin" if result.admitted else "gatecrasher_alert",
            "guest": {
                "id": guest.id,
                "table_number": result.table_number,
                "is_flagged": guest.is_flagged,
            } if guest else None,
            "reason": result.reason.value if result.reason else None,
            "timestamp": datetime.utcnow().isoformat(),
        }
        await self.websocket_manager.broadcast_to_event(event.public_code, message)

    async def broadcast_seating_update(self, event: Event, update_type: str = "seating_update"):
        """Broadcast that table occupancy changed (release, reassignment)"""
        if not self.websocket_manager:
            return
        message = {
            "type": update_type,
            "timestamp": datetime.utcnow().isoformat(),
            "message": "Seating arrangement has been updated"
        }
        await self.websocket_manager.broadcast_to_event(event.public_code, message)
