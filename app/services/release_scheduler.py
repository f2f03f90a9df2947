"""
Returns unclaimed reserved tables to the general pool after the release deadline
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ReleaseRaceLost
from app.models import Event, Guest, Table
from app.models.enums import RsvpStatus
from app.services.repositories import EventRepo, GuestRepo, TableRepo
from app.services.rsvp_lifecycle import GuestState, RSVPLifecycle, state_of

logger = logging.getLogger(__name__)

RELEASABLE = (GuestState.CONFIRMED, GuestState.PENDING)


class ReservationReleaseScheduler:
    """Trigger-agnostic: a cron script or a planner button calls release_due_tables"""

    @staticmethod
    def release_due_tables(db: Session, event: Event, now: Optional[datetime] = None) -> List[int]:
        """Release every reserved table of ``event`` whose deadline has passed.

        For each still-reserved table the guests who have not checked in are
        moved to NO_SHOW through the guarded transition, which only matches
        while ``checked_in`` is false. A guest whose check-in landed first is
        left alone (ReleaseRaceLost, logged, not retried). Re-running with
        the same ``now`` finds no reserved table left and changes nothing.

        Returns the ids of tables released by this call.
        """
        now = now or datetime.utcnow()
        deadline = event.release_deadline
        if deadline is None or now < deadline:
            return []

        released: List[int] = []
        for table in TableRepo.reserved_unreleased(db, event.id):
            for guest in GuestRepo.list_on_table(db, table.id):
                try:
                    ReservationReleaseScheduler._release_guest(db, event, table, guest)
                except ReleaseRaceLost as e:
                    logger.info(f"[release] event={event.id} table={table.id} guest={guest.id}: {e.message}")

            if TableRepo.mark_released_if_reserved(db, table, now):
                db.refresh(table)
                released.append(table.id)
                logger.info(f"[release] event={event.id} table={table.id} (#{table.table_number}) "
                            f"returned to general pool, occupancy {table.current_occupancy}/{table.capacity}")
        return released

    @staticmethod
    def _release_guest(db: Session, event: Event, table: Table, guest: Guest) -> None:
        if state_of(guest) not in RELEASABLE:
            return

        # One source state per UPDATE: the row that matched, not the in-memory
        # state, decides whether a venue place goes back
        unseat = {Guest.table_id: None, Guest.table_number: None}
        for prior in RELEASABLE:
            if RSVPLifecycle.apply(db, guest, GuestState.NO_SHOW, values=unseat,
                                   only_from=(prior,), where=[Guest.table_id == table.id]):
                break
        else:
            raise ReleaseRaceLost(f"guest moved to {state_of(guest).value} before release")

        TableRepo.release_seat(db, table.id)
        if prior is GuestState.CONFIRMED:
            EventRepo.release_place(db, event)
        logger.warning(f"[release] event={event.id} table={table.id} guest={guest.id} "
                       f"prior_state={prior.value} -> {RsvpStatus.NO_SHOW.value}")
