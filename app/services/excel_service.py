"""
Excel processing service for guest list import/export
"""

import io
import logging
from typing import List, Dict, Optional, Tuple
import pandas as pd
from sqlalchemy.orm import Session

from app.core.errors import AdmissionError
from app.models import Event, Guest
from app.models.enums import InviteChannel
from app.services.guest_service import GuestService
from app.services.repositories import TierRepo

logger = logging.getLogger(__name__)

class GuestImportService:
    """Service for handling guest list spreadsheets"""

    REQUIRED_COLUMNS = ['first name', 'last name', 'phone']
    OPTIONAL_COLUMNS = ['email', 'tier']

    @staticmethod
    def create_template() -> bytes:
        """Create Excel template with the expected columns"""
        df = pd.DataFrame(columns=[
            'First Name', 'Last Name', 'Phone', 'Email', 'Tier'
        ])

        # Add sample data for guidance
        sample_data = [
            ['Ada', 'Obi', '08031234567', 'ada@example.com', 'VIP'],
            ['Tunde', 'Bello', '+2348059876543', '', 'Family'],
            ['Grace', 'Eze', '08120001111', '', ''],
        ]

        for row in sample_data:
            df.loc[len(df)] = row

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guest List')

        return buffer.getvalue()

    @staticmethod
    def map_columns(df: pd.DataFrame) -> Dict[str, str]:
        """Map normalized column names to the sheet's own headers"""
        mapping = {}
        for col in df.columns:
            col_lower = str(col).lower().strip().replace('_', ' ')
            if col_lower in ('first name', 'firstname', 'first'):
                mapping['first name'] = col
            elif col_lower in ('last name', 'lastname', 'surname', 'last'):
                mapping['last name'] = col
            elif 'phone' in col_lower or 'whatsapp' in col_lower:
                mapping['phone'] = col
            elif 'email' in col_lower:
                mapping['email'] = col
            elif 'tier' in col_lower or 'category' in col_lower:
                mapping['tier'] = col
        return mapping

    @staticmethod
    def validate_excel_structure(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate Excel file structure"""
        errors = []
        mapping = GuestImportService.map_columns(df)

        missing_columns = [col for col in GuestImportService.REQUIRED_COLUMNS if col not in mapping]
        if missing_columns:
            errors.append(f"Missing required columns: {', '.join(missing_columns)}")

        return len(errors) == 0, errors

    @staticmethod
    def _cell(row, mapping: Dict[str, str], key: str) -> Optional[str]:
        if key not in mapping:
            return None
        value = row[mapping[key]]
        if pd.isna(value):
            return None
        text = str(value).strip()
        # Phone columns read as numbers lose their leading zero and gain ".0"
        if key == 'phone' and text.endswith('.0'):
            text = text[:-2]
        return text or None

    @staticmethod
    def process_upload(
        file_content: bytes,
        event: Event,
        db: Session
    ) -> Tuple[bool, List[str], int]:
        """Create every row through the guest creation path.

        Returns (success, errors, processed_count). On any row error nothing
        should be committed: the caller rolls back.
        """
        try:
            df = pd.read_excel(io.BytesIO(file_content), dtype=str)
        except Exception as e:
            logger.warning(f"Event {event.id}: unreadable guest sheet: {e}")
            return False, [f"Error reading Excel file: {str(e)}"], 0

        valid_structure, structure_errors = GuestImportService.validate_excel_structure(df)
        if not valid_structure:
            return False, structure_errors, 0

        mapping = GuestImportService.map_columns(df)
        errors = []
        processed_count = 0

        for index, row in df.iterrows():
            line = index + 2  # header is row 1
            first_name = GuestImportService._cell(row, mapping, 'first name')
            last_name = GuestImportService._cell(row, mapping, 'last name')
            if not first_name and not last_name:
                continue

            tier_id = None
            tier_name = GuestImportService._cell(row, mapping, 'tier')
            if tier_name:
                tier = TierRepo.get_by_name(db, event.id, tier_name)
                if not tier:
                    errors.append(f"Row {line}: unknown tier '{tier_name}'")
                    continue
                tier_id = tier.id

            try:
                GuestService.create_guest(
                    db, event,
                    first_name=first_name,
                    last_name=last_name,
                    phone=GuestImportService._cell(row, mapping, 'phone'),
                    email=GuestImportService._cell(row, mapping, 'email'),
                    tier_id=tier_id,
                    channel=InviteChannel.IMPORT,
                )
            except AdmissionError as e:
                errors.append(f"Row {line}: {e.message}")
                continue
            processed_count += 1

        if errors:
            logger.warning(f"Event {event.id}: guest import rejected with {len(errors)} row errors")
            return False, errors, 0

        logger.info(f"Event {event.id}: imported {processed_count} guests")
        return True, [], processed_count

    @staticmethod
    def export_current_data(event: Event, db: Session, include_checkin: bool = True) -> bytes:
        """Export current guest list to Excel"""
        guests = db.query(Guest).filter(Guest.event_id == event.id).order_by(Guest.id).all()

        data = []
        for guest in guests:
            row = {
                'First Name': guest.first_name,
                'Last Name': guest.last_name,
                'Phone': guest.phone,
                'Email': guest.email,
                'Tier': guest.tier.name if guest.tier else '',
                'RSVP': guest.rsvp_status,
                'Table': guest.table_number,
            }
            if include_checkin:
                row['Checked In'] = 'Yes' if guest.checked_in else 'No'

            data.append(row)

        df = pd.DataFrame(data, columns=[
            'First Name', 'Last Name', 'Phone', 'Email', 'Tier', 'RSVP', 'Table',
        ] + (['Checked In'] if include_checkin else []))

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guest List')

        return buffer.getvalue()
