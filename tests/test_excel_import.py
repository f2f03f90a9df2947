"""
Tests for guest list spreadsheet import and export
"""

import pytest
import pandas as pd
import io
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base, serialize_sqlite_writers
from app.models import Event, Guest, GuestTier
from app.services.excel_service import GuestImportService

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_excel.db"
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
def sample_event(db_session):
    """Create a CLOSED event with VIP and Family tiers"""
    event = Event(
        planner_id="planner-1",
        name="Test Wedding",
        public_code="TEST123",
        event_start_at=datetime(2026, 6, 15, 14, 0),
        invite_model="CLOSED",
    )
    db_session.add(event)
    db_session.flush()
    db_session.add_all([
        GuestTier(event_id=event.id, name="VIP", max_guests=1),
        GuestTier(event_id=event.id, name="Family"),
    ])
    db_session.commit()
    db_session.refresh(event)
    return event

def create_test_excel(data):
    """Helper function to create Excel bytes from data"""
    df = pd.DataFrame(data)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, index=False)
    return buffer.getvalue()

def test_validate_excel_structure_valid():
    """Test Excel structure validation with valid columns"""
    df = pd.DataFrame({
        'First Name': ['John'],
        'Last Name': ['Doe'],
        'Phone': ['08031234567'],
    })

    valid, errors = GuestImportService.validate_excel_structure(df)
    assert valid
    assert len(errors) == 0

def test_validate_excel_structure_missing_columns():
    """Test Excel structure validation with missing columns"""
    df = pd.DataFrame({
        'First Name': ['John'],
        # Missing Last Name and Phone
    })

    valid, errors = GuestImportService.validate_excel_structure(df)
    assert not valid
    assert 'missing required columns' in errors[0].lower()
    assert 'last name' in errors[0]

def test_column_aliases():
    """Headers are matched case-insensitively and by common aliases"""
    df = pd.DataFrame({
        'FIRSTNAME': ['John'],
        'surname': ['Doe'],
        'WhatsApp Number': ['08031234567'],
        'Guest Category': ['VIP'],
    })

    mapping = GuestImportService.map_columns(df)
    assert mapping == {
        'first name': 'FIRSTNAME',
        'last name': 'surname',
        'phone': 'WhatsApp Number',
        'tier': 'Guest Category',
    }

def test_process_upload_success(db_session, sample_event):
    """Every row goes through guest creation: tier counted, token issued"""
    excel_bytes = create_test_excel({
        'First Name': ['John', 'Jane', 'Bob'],
        'Last Name': ['Doe', 'Smith', 'Johnson'],
        'Phone': ['08031234567', '+2348059876543', '08120001111'],
        'Email': ['john@example.com', None, None],
        'Tier': ['VIP', 'family', None],
    })

    success, errors, count = GuestImportService.process_upload(excel_bytes, sample_event, db_session)

    assert success
    assert errors == []
    assert count == 3

    guests = db_session.query(Guest).filter(Guest.event_id == sample_event.id).order_by(Guest.id).all()
    assert [g.phone for g in guests] == ['+2348031234567', '+2348059876543', '+2348120001111']
    assert all(g.invite_channel == 'IMPORT' for g in guests)
    assert all(g.invite_token for g in guests)
    assert guests[1].tier.name == 'Family'
    assert guests[2].tier_id is None

    vip = db_session.query(GuestTier).filter(GuestTier.name == 'VIP').one()
    db_session.refresh(vip)
    assert vip.guest_count == 1

def test_process_upload_skips_blank_rows(db_session, sample_event):
    excel_bytes = create_test_excel({
        'First Name': ['John', None],
        'Last Name': ['Doe', None],
        'Phone': ['08031234567', None],
    })

    success, _, count = GuestImportService.process_upload(excel_bytes, sample_event, db_session)

    assert success
    assert count == 1

def test_process_upload_reports_row_errors(db_session, sample_event):
    """A full tier, a duplicate phone and an unknown tier are reported per row"""
    excel_bytes = create_test_excel({
        'First Name': ['John', 'Jane', 'Bob', 'Ann'],
        'Last Name': ['Doe', 'Smith', 'Johnson', 'Lee'],
        'Phone': ['08031234567', '08031234568', '08031234567', '08031234569'],
        'Tier': ['VIP', 'VIP', None, 'Gold'],
    })

    success, errors, count = GuestImportService.process_upload(excel_bytes, sample_event, db_session)
    db_session.rollback()

    assert not success
    assert count == 0
    assert len(errors) == 3
    assert errors[0].startswith('Row 3:') and "'VIP' is full" in errors[0]
    assert errors[1].startswith('Row 4:')
    assert errors[2] == "Row 5: unknown tier 'Gold'"

    # Nothing was kept
    assert db_session.query(Guest).filter(Guest.event_id == sample_event.id).count() == 0

def test_process_upload_unreadable_file(db_session, sample_event):
    success, errors, count = GuestImportService.process_upload(b'not a spreadsheet', sample_event, db_session)

    assert not success
    assert errors[0].startswith('Error reading Excel file')
    assert count == 0

def test_create_template():
    """Test Excel template creation"""
    template_bytes = GuestImportService.create_template()

    df = pd.read_excel(io.BytesIO(template_bytes), dtype=str)
    for col in ['First Name', 'Last Name', 'Phone', 'Email', 'Tier']:
        assert col in df.columns
    assert df.iloc[0]['Phone'] == '08031234567'

def test_template_imports_cleanly(db_session, sample_event):
    template_bytes = GuestImportService.create_template()

    success, errors, count = GuestImportService.process_upload(template_bytes, sample_event, db_session)

    assert success, errors
    assert count == 3

def test_export_current_data(db_session, sample_event):
    """Test exporting current guest data"""
    db_session.add_all([
        Guest(event_id=sample_event.id, first_name="John", last_name="Doe", phone="+2348031234567",
              rsvp_status="CONFIRMED", table_number=3, checked_in=True),
        Guest(event_id=sample_event.id, first_name="Jane", last_name="Smith", phone="+2348031234568",
              rsvp_status="PENDING", checked_in=False),
    ])
    db_session.commit()

    excel_bytes = GuestImportService.export_current_data(sample_event, db_session)

    df = pd.read_excel(io.BytesIO(excel_bytes))
    assert len(df) == 2
    assert 'Checked In' in df.columns
    assert df.iloc[0]['First Name'] == 'John'
    assert df.iloc[0]['RSVP'] == 'CONFIRMED'
    assert df.iloc[0]['Checked In'] == 'Yes'
    assert df.iloc[1]['Checked In'] == 'No'

def test_export_without_checkin_column(db_session, sample_event):
    excel_bytes = GuestImportService.export_current_data(sample_event, db_session, include_checkin=False)

    df = pd.read_excel(io.BytesIO(excel_bytes))
    assert 'Checked In' not in df.columns
