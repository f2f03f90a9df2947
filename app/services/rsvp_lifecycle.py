"""
Guest RSVP / check-in state machine

A guest's lifecycle state is derived from two columns: ``checked_in`` wins,
otherwise ``rsvp_status``. All writes go through ``RSVPLifecycle`` which turns
the allowed-transition table into the WHERE clause of one conditional UPDATE,
so two writers racing on the same guest (an usher and the release job, two
ushers, two RSVP submissions) get exactly one winner.
"""

import enum
import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import IllegalTransition
from app.models import Guest
from app.models.enums import RsvpStatus
from app.services.repositories import GuestRepo

logger = logging.getLogger(__name__)


class GuestState(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    WAITLISTED = "WAITLISTED"
    CHECKED_IN = "CHECKED_IN"
    NO_SHOW = "NO_SHOW"


TRANSITIONS: Dict[GuestState, FrozenSet[GuestState]] = {
    GuestState.PENDING: frozenset({
        GuestState.CONFIRMED, GuestState.DECLINED, GuestState.WAITLISTED,
        GuestState.CHECKED_IN, GuestState.NO_SHOW,
    }),
    GuestState.CONFIRMED: frozenset({GuestState.CHECKED_IN, GuestState.NO_SHOW}),
    GuestState.WAITLISTED: frozenset({GuestState.CONFIRMED, GuestState.CHECKED_IN, GuestState.NO_SHOW}),
    # Late arrival after the reserved seat was released
    GuestState.NO_SHOW: frozenset({GuestState.CHECKED_IN}),
    GuestState.DECLINED: frozenset(),
    GuestState.CHECKED_IN: frozenset(),
}

# Planner-only moves back to PENDING (credential reset)
OVERRIDES: Dict[GuestState, FrozenSet[GuestState]] = {
    GuestState.PENDING: frozenset({
        GuestState.CONFIRMED, GuestState.DECLINED, GuestState.WAITLISTED, GuestState.NO_SHOW,
    }),
}


def state_of(guest: Guest) -> GuestState:
    if guest.checked_in:
        return GuestState.CHECKED_IN
    return GuestState(guest.rsvp_status)


def can_transition(source: GuestState, target: GuestState) -> bool:
    return target in TRANSITIONS[source]


def sources_for(target: GuestState) -> List[str]:
    """rsvp_status values from which ``target`` is reachable (CHECKED_IN is never a source)"""
    return sorted(
        state.value for state, targets in TRANSITIONS.items()
        if target in targets and state is not GuestState.CHECKED_IN
    )


def _values_for(target: GuestState, now: datetime) -> Dict[Any, Any]:
    if target is GuestState.CHECKED_IN:
        return {Guest.checked_in: True, Guest.checked_in_at: now}
    return {Guest.rsvp_status: RsvpStatus(target.value).value}


class RSVPLifecycle:
    """The single place guest lifecycle columns are written"""

    @staticmethod
    def apply(
        db: Session,
        guest: Guest,
        target: GuestState,
        values: Optional[Dict[Any, Any]] = None,
        now: Optional[datetime] = None,
        only_from: Optional[Iterable[GuestState]] = None,
        where: Optional[Iterable[Any]] = None,
    ) -> bool:
        """Guarded write; returns False when another writer got there first.

        ``only_from`` narrows the legal source states and ``where`` adds extra
        row conditions to the same UPDATE.
        """
        now = now or datetime.utcnow()
        allowed = sources_for(target)
        if only_from is not None:
            narrowed = {state.value for state in only_from}
            allowed = [status for status in allowed if status in narrowed]
        if not allowed:
            return False
        guard = [Guest.checked_in == False, Guest.rsvp_status.in_(allowed)]  # noqa: E712
        if where:
            guard.extend(where)
        update = _values_for(target, now)
        if values:
            update.update(values)
        won = GuestRepo.update_if(db, guest.id, guard, update)
        db.refresh(guest)
        return won

    @staticmethod
    def transition(
        db: Session,
        guest: Guest,
        target: GuestState,
        values: Optional[Dict[Any, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Guest:
        """Validate against the current state, then apply; raises IllegalTransition"""
        source = state_of(guest)
        if not can_transition(source, target):
            raise IllegalTransition(source.value, target.value)
        if not RSVPLifecycle.apply(db, guest, target, values=values, now=now):
            current = state_of(guest)
            logger.info(f"Guest {guest.id}: {source.value} -> {target.value} lost to a concurrent write ({current.value})")
            raise IllegalTransition(current.value, target.value)
        logger.info(f"Guest {guest.id}: {source.value} -> {target.value}")
        return guest

    @staticmethod
    def override_to_pending(db: Session, guest: Guest, values: Optional[Dict[Any, Any]] = None) -> Guest:
        """Planner reset; never touches a checked-in guest"""
        source = state_of(guest)
        allowed = OVERRIDES[GuestState.PENDING]
        if source not in allowed:
            raise IllegalTransition(source.value, GuestState.PENDING.value)
        guard = [Guest.checked_in == False, Guest.rsvp_status.in_(sorted(s.value for s in allowed))]  # noqa: E712
        update = {Guest.rsvp_status: RsvpStatus.PENDING.value}
        if values:
            update.update(values)
        if not GuestRepo.update_if(db, guest.id, guard, update):
            db.refresh(guest)
            raise IllegalTransition(state_of(guest).value, GuestState.PENDING.value)
        db.refresh(guest)
        logger.info(f"Guest {guest.id}: {source.value} -> PENDING (planner override)")
        return guest
