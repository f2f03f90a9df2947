"""
Tests for the guest RSVP / check-in state machine
"""

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, serialize_sqlite_writers
from app.core.errors import IllegalTransition
from app.models import Event, Guest
from app.services.rsvp_lifecycle import (
    GuestState, RSVPLifecycle, can_transition, sources_for, state_of,
)

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_rsvp_lifecycle.db"
engine = serialize_sqlite_writers(create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30}))
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture
def db_session():
    """Create test database session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def guest(db_session):
    event = Event(
        planner_id="planner-1",
        name="Lifecycle Party",
        public_code="LIFE123",
        event_start_at=datetime(2026, 6, 1, 18, 0),
    )
    db_session.add(event)
    db_session.flush()
    guest = Guest(event_id=event.id, first_name="Ada", last_name="Obi", phone="+2348030000001")
    db_session.add(guest)
    db_session.commit()
    return guest

def test_transition_table():
    """Terminal states have no way out"""
    assert can_transition(GuestState.PENDING, GuestState.CONFIRMED)
    assert can_transition(GuestState.CONFIRMED, GuestState.NO_SHOW)
    assert can_transition(GuestState.NO_SHOW, GuestState.CHECKED_IN)
    assert not can_transition(GuestState.CHECKED_IN, GuestState.PENDING)
    assert not can_transition(GuestState.DECLINED, GuestState.CHECKED_IN)
    assert not can_transition(GuestState.CONFIRMED, GuestState.DECLINED)

def test_checked_in_is_never_a_source():
    assert "CHECKED_IN" not in sources_for(GuestState.NO_SHOW)
    assert sources_for(GuestState.NO_SHOW) == ["CONFIRMED", "PENDING", "WAITLISTED"]
    assert "DECLINED" not in sources_for(GuestState.CHECKED_IN)

def test_new_guest_is_pending(db_session, guest):
    assert state_of(guest) is GuestState.PENDING

def test_transition_moves_state(db_session, guest):
    RSVPLifecycle.transition(db_session, guest, GuestState.CONFIRMED)
    assert guest.rsvp_status == "CONFIRMED"
    assert state_of(guest) is GuestState.CONFIRMED

def test_illegal_transition_rejected(db_session, guest):
    RSVPLifecycle.transition(db_session, guest, GuestState.DECLINED)

    with pytest.raises(IllegalTransition) as exc_info:
        RSVPLifecycle.transition(db_session, guest, GuestState.CONFIRMED)

    assert exc_info.value.source == "DECLINED"
    assert guest.rsvp_status == "DECLINED"

def test_checked_in_derived_from_flag(db_session, guest):
    now = datetime(2026, 6, 1, 18, 5)
    assert RSVPLifecycle.apply(db_session, guest, GuestState.CHECKED_IN, now=now)

    assert guest.checked_in is True
    assert guest.checked_in_at == now
    assert state_of(guest) is GuestState.CHECKED_IN

    with pytest.raises(IllegalTransition):
        RSVPLifecycle.transition(db_session, guest, GuestState.NO_SHOW)

def test_no_show_is_idempotent(db_session, guest):
    RSVPLifecycle.transition(db_session, guest, GuestState.CONFIRMED)

    first = RSVPLifecycle.apply(db_session, guest, GuestState.NO_SHOW,
                                only_from=(GuestState.CONFIRMED, GuestState.PENDING))
    second = RSVPLifecycle.apply(db_session, guest, GuestState.NO_SHOW,
                                 only_from=(GuestState.CONFIRMED, GuestState.PENDING))

    assert first is True
    assert second is False
    assert guest.rsvp_status == "NO_SHOW"

def test_guard_loses_to_earlier_check_in(db_session, guest):
    """A stale in-memory state cannot overwrite a committed check-in"""
    RSVPLifecycle.transition(db_session, guest, GuestState.CONFIRMED)
    db_session.query(Guest).filter(Guest.id == guest.id).update({Guest.checked_in: True})

    won = RSVPLifecycle.apply(db_session, guest, GuestState.NO_SHOW)

    assert won is False
    assert guest.checked_in is True
    assert guest.rsvp_status == "CONFIRMED"

def test_override_to_pending(db_session, guest):
    RSVPLifecycle.transition(db_session, guest, GuestState.DECLINED)

    RSVPLifecycle.override_to_pending(db_session, guest)

    assert guest.rsvp_status == "PENDING"

def test_override_refuses_checked_in(db_session, guest):
    RSVPLifecycle.apply(db_session, guest, GuestState.CHECKED_IN)

    with pytest.raises(IllegalTransition):
        RSVPLifecycle.override_to_pending(db_session, guest)
