"""
Tests for seat allocation
"""

import threading
import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, serialize_sqlite_writers
from app.core.errors import CapacityExceeded, TableNotEligible, TableNotFound
from app.models import Event, Guest, GuestTier, Table
from app.services.seating_service import SeatAllocator, WaitlistSignal

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_seating.db"
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
def hall(db_session):
    """Event with a VIP tier, two reserved VIP tables and two general tables"""
    event = Event(
        planner_id="planner-1",
        name="Large Wedding",
        public_code="LARGE123",
        event_start_at=datetime(2026, 8, 20, 16, 0),
    )
    db_session.add(event)
    db_session.flush()

    vip = GuestTier(event_id=event.id, name="VIP", seating_policy="PRE_ASSIGNED", table_prefix="VIP")
    regular = GuestTier(event_id=event.id, name="Regular", seating_policy="DYNAMIC")
    db_session.add_all([vip, regular])
    db_session.flush()

    db_session.add_all([
        # Inserted out of order on purpose
        Table(event_id=event.id, table_number=3, label="VIP-3", capacity=1, reserved_for_tier_id=vip.id),
        Table(event_id=event.id, table_number=2, label="VIP-2", capacity=1, reserved_for_tier_id=vip.id),
        Table(event_id=event.id, table_number=5, label="Garden", capacity=2),
        Table(event_id=event.id, table_number=4, label="Hall", capacity=1),
    ])
    db_session.commit()
    return event, vip, regular

def add_guest(db, event, tier, name, phone):
    guest = Guest(event_id=event.id, tier_id=tier.id if tier else None,
                  first_name=name, last_name="Guest", phone=phone)
    db.add(guest)
    db.flush()
    return guest

def table_no(db, event, number):
    table = db.query(Table).filter(Table.event_id == event.id, Table.table_number == number).first()
    db.refresh(table)
    return table

def test_reserved_tables_lowest_number_first(db_session, hall):
    event, vip, _ = hall
    first = add_guest(db_session, event, vip, "Ada", "+2348030000001")
    second = add_guest(db_session, event, vip, "Bola", "+2348030000002")

    assert SeatAllocator.assign(db_session, event, first).table_number == 2
    assert SeatAllocator.assign(db_session, event, second).table_number == 3
    assert first.table_number == 2
    assert table_no(db_session, event, 2).current_occupancy == 1

def test_reserved_full_falls_back_to_general(db_session, hall):
    event, vip, _ = hall
    guests = [add_guest(db_session, event, vip, f"V{i}", f"+23480300000{i:02d}") for i in range(3)]

    tables = [SeatAllocator.assign(db_session, event, g) for g in guests]

    # General pool is also lowest number first
    assert [t.table_number for t in tables] == [2, 3, 4]

def test_general_fallback_forbidden_returns_waitlist(db_session, hall):
    event, vip, _ = hall
    vip.allow_general_fallback = False
    db_session.flush()
    guests = [add_guest(db_session, event, vip, f"V{i}", f"+23480300000{i:02d}") for i in range(3)]

    results = [SeatAllocator.assign(db_session, event, g) for g in guests]

    assert isinstance(results[2], WaitlistSignal)
    assert results[2].guest_id == guests[2].id
    assert guests[2].table_id is None
    assert table_no(db_session, event, 4).current_occupancy == 0

def test_fallback_forbidden_waitlists_at_gate_too(db_session, hall):
    event, vip, _ = hall
    vip.allow_general_fallback = False
    db_session.flush()
    guests = [add_guest(db_session, event, vip, f"V{i}", f"+23480300000{i:02d}") for i in range(3)]
    for g in guests[:2]:
        SeatAllocator.assign(db_session, event, g)

    result = SeatAllocator.assign(db_session, event, guests[2], at_gate=True)

    assert isinstance(result, WaitlistSignal)
    assert guests[2].table_id is None
    assert table_no(db_session, event, 4).current_occupancy == 0

def test_table_prefix_underscore_is_literal(db_session, hall):
    event, vip, _ = hall
    vip.table_prefix = "VIP_"
    db_session.flush()
    guest = add_guest(db_session, event, vip, "Ada", "+2348030000001")

    table = SeatAllocator.assign(db_session, event, guest)

    # "VIP-2" would match an unescaped "VIP_%" pattern
    assert table.table_number == 4
    assert table_no(db_session, event, 2).current_occupancy == 0

def test_table_prefix_filters_reserved_tables(db_session, hall):
    event, vip, _ = hall
    vip.table_prefix = "GOLD"
    db_session.flush()
    guest = add_guest(db_session, event, vip, "Ada", "+2348030000001")

    table = SeatAllocator.assign(db_session, event, guest)

    # No reserved table carries the GOLD prefix, so the general pool serves
    assert table.table_number == 4

def test_dynamic_guest_not_preallocated(db_session, hall):
    event, _, regular = hall
    guest = add_guest(db_session, event, regular, "Ada", "+2348030000001")

    assert SeatAllocator.assign(db_session, event, guest) is None
    assert guest.table_id is None

def test_dynamic_guest_seated_at_gate_from_general_pool_only(db_session, hall):
    event, _, regular = hall
    guest = add_guest(db_session, event, regular, "Ada", "+2348030000001")

    table = SeatAllocator.assign(db_session, event, guest, at_gate=True)

    assert table.table_number == 4
    assert table.reserved_for_tier_id is None

def test_assign_is_idempotent_for_seated_guest(db_session, hall):
    event, vip, _ = hall
    guest = add_guest(db_session, event, vip, "Ada", "+2348030000001")
    first = SeatAllocator.assign(db_session, event, guest)

    again = SeatAllocator.assign(db_session, event, guest)

    assert again.id == first.id
    assert table_no(db_session, event, 2).current_occupancy == 1

def test_general_pool_exhausted(db_session, hall):
    event, _, regular = hall
    guests = [add_guest(db_session, event, regular, f"R{i}", f"+23480300000{i:02d}") for i in range(4)]

    results = [SeatAllocator.assign(db_session, event, g, at_gate=True) for g in guests]

    assert [r.table_number for r in results[:3]] == [4, 5, 5]
    assert isinstance(results[3], WaitlistSignal)

def test_release_seat_frees_occupancy(db_session, hall):
    event, vip, _ = hall
    guest = add_guest(db_session, event, vip, "Ada", "+2348030000001")
    SeatAllocator.assign(db_session, event, guest)

    freed = SeatAllocator.release_seat(db_session, guest)

    assert freed is not None
    assert guest.table_id is None
    assert table_no(db_session, event, 2).current_occupancy == 0
    assert SeatAllocator.release_seat(db_session, guest) is None

def test_reassign_moves_guest(db_session, hall):
    event, _, regular = hall
    guest = add_guest(db_session, event, regular, "Ada", "+2348030000001")
    SeatAllocator.assign(db_session, event, guest, at_gate=True)

    table = SeatAllocator.reassign(db_session, event, guest, 5)

    assert table.table_number == 5
    assert guest.table_number == 5
    assert table_no(db_session, event, 4).current_occupancy == 0
    assert table_no(db_session, event, 5).current_occupancy == 1

def test_reassign_respects_reservation(db_session, hall):
    event, _, regular = hall
    guest = add_guest(db_session, event, regular, "Ada", "+2348030000001")

    with pytest.raises(TableNotEligible):
        SeatAllocator.reassign(db_session, event, guest, 2)

def test_reassign_to_full_table(db_session, hall):
    event, _, regular = hall
    first = add_guest(db_session, event, regular, "Ada", "+2348030000001")
    second = add_guest(db_session, event, regular, "Bola", "+2348030000002")
    SeatAllocator.assign(db_session, event, first, at_gate=True)

    with pytest.raises(CapacityExceeded) as exc_info:
        SeatAllocator.reassign(db_session, event, second, 4)

    assert exc_info.value.name == "4"

def test_reassign_unknown_table(db_session, hall):
    event, _, regular = hall
    guest = add_guest(db_session, event, regular, "Ada", "+2348030000001")

    with pytest.raises(TableNotFound):
        SeatAllocator.reassign(db_session, event, guest, 99)

def test_concurrent_claims_for_last_seat(db_session, hall):
    """Two sessions race for table 4's only seat: one wins, one waits"""
    event, _, regular = hall
    first = add_guest(db_session, event, regular, "Ada", "+2348030000001")
    second = add_guest(db_session, event, regular, "Bola", "+2348030000002")
    # Leave only table 4 open
    db_session.query(Table).filter(Table.table_number == 5).update({Table.current_occupancy: 2})
    event_id, guest_ids = event.id, [first.id, second.id]
    # Release the write lock before the workers start
    db_session.commit()

    barrier = threading.Barrier(2)
    results = {}

    def worker(guest_id):
        db = TestingSessionLocal()
        try:
            barrier.wait()
            event = db.get(Event, event_id)
            guest = db.get(Guest, guest_id)
            results[guest_id] = SeatAllocator.assign(db, event, guest, at_gate=True)
            db.commit()
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(gid,)) for gid in guest_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    outcomes = list(results.values())
    assert sum(isinstance(o, Table) for o in outcomes) == 1
    assert sum(isinstance(o, WaitlistSignal) for o in outcomes) == 1

    db_session.expire_all()
    table = table_no(db_session, event, 4)
    assert table.current_occupancy == 1
    assert table.current_occupancy <= table.capacity
