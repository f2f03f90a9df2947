"""
Tests for gate check-in
"""

import asyncio
import threading
import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, serialize_sqlite_writers
from app.models import Event, Guest, GuestTier, Table, Usher
from app.services.checkin_service import CheckInValidator, DenialReason
from app.services.credentials import InviteCredentialIssuer, RegistrationPayload
from app.services.guest_service import GuestService
from app.services.rsvp_lifecycle import GuestState, RSVPLifecycle

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_checkin.db"
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
def gate(db_session):
    """CLOSED event with one general table of two and a gate usher"""
    event = Event(
        planner_id="planner-1",
        name="Test Wedding",
        public_code="TEST123",
        status="ONGOING",
        event_start_at=datetime(2026, 6, 15, 14, 0),
        invite_model="CLOSED",
    )
    db_session.add(event)
    db_session.flush()
    tier = GuestTier(event_id=event.id, name="Friends", seating_policy="DYNAMIC")
    db_session.add(tier)
    db_session.add(Table(event_id=event.id, table_number=7, capacity=2))
    usher = Usher(event_id=event.id, name="Gate A", role="GATE", access_token="usher-token")
    db_session.add(usher)
    db_session.commit()
    return event, tier, usher

def confirmed_guest(db, event, tier, first_name, phone):
    guest = GuestService.create_guest(db, event, first_name, "Guest", phone=phone, tier_id=tier.id)
    InviteCredentialIssuer.redeem(db, event, guest.invite_token, RegistrationPayload())
    return guest

def test_admit_confirmed_guest(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    now = datetime(2026, 6, 15, 14, 10)

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher, now=now)

    assert result.admitted
    assert result.reason is None
    assert result.guest.id == guest.id
    assert guest.checked_in is True
    assert guest.checked_in_at == now
    assert guest.checked_in_by == usher.id
    assert guest.is_flagged is False

def test_dynamic_guest_seated_at_gate(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    assert guest.table_id is None

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert result.table_number == 7
    assert guest.table_number == 7
    assert result.seat_waitlisted is False

def test_admitted_without_seat_when_hall_full(db_session, gate):
    event, tier, usher = gate
    db_session.query(Table).filter(Table.event_id == event.id).update({Table.current_occupancy: 2})
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert result.admitted
    assert result.seat_waitlisted is True
    assert result.table_number is None

def test_second_scan_flags_guest(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    validator = CheckInValidator()
    validator.check_in(db_session, event, guest.invite_token, usher=usher)

    replay = validator.check_in(db_session, event, guest.invite_token, usher=usher)

    assert not replay.admitted
    assert replay.reason is DenialReason.ALREADY_USED
    assert replay.is_gatecrasher_alert
    assert guest.is_flagged is True
    assert guest.flag_count == 1

    validator.check_in(db_session, event, guest.invite_token, usher=usher)
    db_session.refresh(guest)
    assert guest.flag_count == 2

def test_declined_guest_denied(db_session, gate):
    event, tier, usher = gate
    guest = GuestService.create_guest(db_session, event, "John", "Doe", phone="08031234567", tier_id=tier.id)
    InviteCredentialIssuer.redeem(db_session, event, guest.invite_token, RegistrationPayload(attending=False))

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert not result.admitted
    assert result.reason is DenialReason.DECLINED
    assert guest.checked_in is False
    assert guest.is_flagged is True

def test_unknown_token(db_session, gate):
    event, _, usher = gate

    result = CheckInValidator().check_in(db_session, event, "not-a-real-token", usher=usher)

    assert not result.admitted
    assert result.guest is None
    assert result.reason is DenialReason.INVALID_CREDENTIAL

def test_token_from_other_event_rejected(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    other = Event(planner_id="planner-1", name="Other", public_code="OTHER1",
                  event_start_at=datetime(2026, 6, 16, 14, 0), invite_model="CLOSED")
    db_session.add(other)
    db_session.flush()

    result = CheckInValidator().check_in(db_session, other, guest.invite_token)

    assert result.reason is DenialReason.INVALID_CREDENTIAL

def test_pending_guest_admitted(db_session, gate):
    """Turning up without an RSVP still gets you in"""
    event, tier, usher = gate
    guest = GuestService.create_guest(db_session, event, "John", "Doe", phone="08031234567", tier_id=tier.id)

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert result.admitted
    assert guest.rsvp_status == "PENDING"
    assert guest.checked_in is True

def test_late_arrival_after_no_show(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    RSVPLifecycle.transition(db_session, guest, GuestState.NO_SHOW)

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert result.admitted
    assert result.table_number == 7

def test_manual_lookup_check_in(db_session, gate):
    event, _, usher = gate
    guest = GuestService.create_guest(db_session, event, "John", "Doe")

    result = CheckInValidator().check_in_by_id(db_session, event, guest.id, usher=usher)
    missing = CheckInValidator().check_in_by_id(db_session, event, 9999, usher=usher)

    assert result.admitted
    assert missing.reason is DenialReason.INVALID_CREDENTIAL

def test_concurrent_scans_admit_once(db_session, gate):
    """Five ushers scan the same code at once: one admit, four alerts"""
    event, tier, _ = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    event_id, guest_id, token = event.id, guest.id, guest.invite_token
    db_session.commit()

    barrier = threading.Barrier(5)
    results = []
    lock = threading.Lock()

    def scan():
        db = TestingSessionLocal()
        try:
            barrier.wait()
            result = CheckInValidator().check_in(db, db.get(Event, event_id), token)
            db.commit()
            with lock:
                results.append(result)
        finally:
            db.close()

    threads = [threading.Thread(target=scan) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(r.admitted for r in results) == 1
    assert [r.reason for r in results if not r.admitted] == [DenialReason.ALREADY_USED] * 4

    db_session.expire_all()
    guest = db_session.get(Guest, guest_id)
    assert guest.checked_in is True
    assert guest.flag_count == 4
    table = db_session.query(Table).filter(Table.event_id == event_id).one()
    assert table.current_occupancy == 1

def test_reserved_tier_without_fallback_not_seated_in_general_pool(db_session, gate):
    event, _, usher = gate
    vip = GuestTier(event_id=event.id, name="VIP", seating_policy="PRE_ASSIGNED",
                    allow_general_fallback=False)
    db_session.add(vip)
    db_session.flush()
    db_session.add(Table(event_id=event.id, table_number=1, capacity=1, current_occupancy=1,
                         reserved_for_tier_id=vip.id))
    db_session.flush()
    guest = GuestService.create_guest(db_session, event, "Ada", "Obi", phone="08030000001", tier_id=vip.id)

    result = CheckInValidator().check_in(db_session, event, guest.invite_token, usher=usher)

    assert result.admitted
    assert result.seat_waitlisted is True
    assert guest.table_id is None
    general = db_session.query(Table).filter(Table.event_id == event.id, Table.table_number == 7).one()
    db_session.refresh(general)
    assert general.current_occupancy == 0

class RecordingManager:
    def __init__(self):
        self.sent = []

    async def broadcast_to_event(self, event_code, message):
        self.sent.append((event_code, message))

def test_broadcast_carries_no_guest_name(db_session, gate):
    event, tier, usher = gate
    guest = confirmed_guest(db_session, event, tier, "John", "08031234567")
    manager = RecordingManager()
    validator = CheckInValidator(manager)
    result = validator.check_in(db_session, event, guest.invite_token, usher=usher)

    asyncio.run(validator.broadcast_check_in(event, result))

    code, message = manager.sent[0]
    assert code == event.public_code
    assert message["type"] == "checkin"
    assert message["guest"] == {"id": guest.id, "table_number": 7, "is_flagged": False}
    assert "John" not in str(message)
