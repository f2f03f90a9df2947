"""
Planner API routes - requires authentication
"""

import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, UploadFile, File, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db, transaction
from app.core.errors import AdmittedGuestsExist, DuplicateTable, EventNotFound, GuestNotFound
from app.models import Event, Guest, MenuItem, Table, Usher, Vendor
from app.models.enums import EventStatus, InviteChannel, InviteModel, VendorRole
from app.schemas.event import (
    BulkTableCreate, EventCreate, EventDetail, EventResponse, MenuItemCreate,
    TableCreate, TableResponse, TierCreate, TierResponse, UsherCreate, VendorCreate,
)
from app.schemas.common import Pagination
from app.schemas.guest import GuestCreate, GuestReassign, GuestResponse, SendInvitesRequest
from app.services.aggregate_service import VendorAggregateProjector
from app.services.checkin_service import CheckInValidator
from app.services.credentials import InviteCredentialIssuer
from app.services.excel_service import GuestImportService
from app.services.guest_service import GuestService
from app.services.messaging import InviteDeliveryService
from app.services.qr_service import QRService
from app.services.release_scheduler import ReservationReleaseScheduler
from app.services.repositories import EventRepo, GuestRepo, TableRepo
from app.services.seating_service import SeatAllocator
from app.services.tier_registry import TierRegistry
from app.api.ws import websocket_manager
from app.utils.security import mint_access_token, verify_planner
from app.utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

router = APIRouter()

checkin_validator = CheckInValidator(websocket_manager)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

def _planner_event(db: Session, event_id: int, planner_id: str) -> Event:
    event = EventRepo.get_for_planner(db, event_id, planner_id)
    if not event:
        raise EventNotFound(f"Event {event_id} not found")
    return event

def _planner_guest(db: Session, event: Event, guest_id: int) -> Guest:
    guest = GuestRepo.get(db, event.id, guest_id)
    if not guest:
        raise GuestNotFound(f"Guest {guest_id} not found")
    return guest

def _event_data(event: Event) -> dict:
    data = EventDetail.model_validate(event).model_dump()
    data["registration_url"] = QRService.get_registration_url(event.public_code, event.invite_code)
    return data

# -------- Events --------

@router.post("/events")
async def create_event(
    event_data: EventCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Create a new event with its tiers"""
    # Generate unique public code
    public_code = secrets.token_urlsafe(8)
    while EventRepo.get_by_public_code(db, public_code):
        public_code = secrets.token_urlsafe(8)

    with transaction(db):
        event = Event(
            planner_id=planner_id,
            name=event_data.name,
            public_code=public_code,
            status=event_data.status.value,
            event_start_at=event_data.event_start_at,
            invite_model=event_data.invite_model.value,
            require_otp=event_data.require_otp,
            rsvp_deadline=event_data.rsvp_deadline,
            release_reserved_after_minutes=event_data.release_reserved_after_minutes,
            venue_capacity=event_data.venue_capacity,
            confirmed_count=0,
        )
        db.add(event)
        db.flush()

        for tier_data in event_data.tiers:
            TierRegistry.create_tier(db, event, **tier_data.model_dump())
        # OPEN events get their shared links up front, one per tier plus the untiered one
        if event.invite_model == InviteModel.OPEN.value:
            InviteCredentialIssuer.issue(db, event)
            for tier in TierRegistry.list_tiers(db, event):
                InviteCredentialIssuer.issue(db, event, tier=tier)

    db.refresh(event)
    return success_response(
        message="Event created successfully",
        data=_event_data(event),
        status_code=201
    )

@router.get("/events")
async def list_events(
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """List the planner's events"""
    events = db.query(Event).filter(Event.planner_id == planner_id).order_by(Event.event_start_at).all()
    return success_response(
        message="Events retrieved",
        data=[EventResponse.model_validate(event).model_dump() for event in events]
    )

@router.get("/events/{event_id}")
async def get_event_details(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Get detailed event information"""
    event = _planner_event(db, event_id, planner_id)
    data = _event_data(event)
    data["stats"] = VendorAggregateProjector.project(db, event, VendorRole.CATERER).model_dump()
    return success_response(message="Event details retrieved", data=data)

@router.patch("/events/{event_id}/status")
async def update_event_status(
    event_id: int,
    status: EventStatus = Query(...),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Publish, start, complete or cancel an event"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        event.status = status.value
    return success_response(message=f"Event is now {status.value}", data={"status": status.value})

@router.delete("/events/{event_id}")
async def delete_event(
    event_id: int,
    override: bool = Query(False),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Delete an event and everything under it; refused once guests are admitted unless overridden"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        admitted = db.query(Guest).filter(Guest.event_id == event.id, Guest.checked_in == True).count()  # noqa: E712
        if admitted and not override:
            raise AdmittedGuestsExist(f"{admitted} guest(s) already checked in; pass override=true to delete anyway",
                                      details={"checked_in": admitted})
        if admitted:
            logger.warning(f"Event {event.id}: planner {planner_id} deleted the event with {admitted} guest(s) checked in")
        db.delete(event)

    return success_response(
        message="Event deleted successfully",
        data={"deleted_event_id": event_id}
    )

# -------- Tiers, tables, menu --------

@router.post("/events/{event_id}/tiers")
async def create_tier(
    event_id: int,
    tier_data: TierCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        tier = TierRegistry.create_tier(db, event, **tier_data.model_dump())
        if event.invite_model == InviteModel.OPEN.value:
            InviteCredentialIssuer.issue(db, event, tier=tier)
    return success_response(
        message="Tier created",
        data=TierResponse.model_validate(tier).model_dump(),
        status_code=201
    )

@router.get("/events/{event_id}/tiers")
async def list_tiers(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    event = _planner_event(db, event_id, planner_id)
    tiers = TierRegistry.list_tiers(db, event)
    return success_response(
        message="Tiers retrieved",
        data=[TierResponse.model_validate(tier).model_dump() for tier in tiers]
    )

@router.post("/events/{event_id}/tables")
async def create_table(
    event_id: int,
    table_data: TableCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Add one numbered table"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        if table_data.reserved_for_tier_id is not None:
            TierRegistry.get_tier(db, event, table_data.reserved_for_tier_id)
        if TableRepo.get_by_number(db, event.id, table_data.table_number):
            raise DuplicateTable(f"Table {table_data.table_number} already exists")
        table = Table(
            event_id=event.id,
            table_number=table_data.table_number,
            label=table_data.label,
            capacity=table_data.capacity or settings.DEFAULT_TABLE_CAPACITY,
            current_occupancy=0,
            reserved_for_tier_id=table_data.reserved_for_tier_id,
            is_released=False,
        )
        db.add(table)
        db.flush()
    db.refresh(table)
    return success_response(
        message="Table created",
        data=TableResponse.model_validate(table).model_dump(),
        status_code=201
    )

@router.post("/events/{event_id}/tables/bulk")
async def create_tables_bulk(
    event_id: int,
    bulk: BulkTableCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Append ``count`` tables numbered after the current highest"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        if bulk.reserved_for_tier_id is not None:
            TierRegistry.get_tier(db, event, bulk.reserved_for_tier_id)
        start = TableRepo.max_table_number(db, event.id) + 1
        tables = []
        for number in range(start, start + bulk.count):
            table = Table(
                event_id=event.id,
                table_number=number,
                label=f"{bulk.label_prefix}{number}" if bulk.label_prefix else None,
                capacity=bulk.seats_per_table or settings.DEFAULT_TABLE_CAPACITY,
                current_occupancy=0,
                reserved_for_tier_id=bulk.reserved_for_tier_id,
                is_released=False,
            )
            db.add(table)
            tables.append(table)
        db.flush()
    return success_response(
        message=f"{len(tables)} tables created",
        data=[TableResponse.model_validate(table).model_dump() for table in tables],
        status_code=201
    )

@router.get("/events/{event_id}/tables")
async def list_tables(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Tables with the guests seated at them"""
    event = _planner_event(db, event_id, planner_id)
    data = []
    for table in TableRepo.list_for_event(db, event.id):
        row = TableResponse.model_validate(table).model_dump()
        row["guests"] = SeatAllocator.get_table_guests(db, table)
        data.append(row)
    return success_response(message="Tables retrieved", data=data)

@router.post("/events/{event_id}/menu")
async def create_menu_item(
    event_id: int,
    item_data: MenuItemCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        sort_order = db.query(MenuItem).filter(MenuItem.event_id == event.id).count()
        item = MenuItem(
            event_id=event.id,
            name=item_data.name,
            category=item_data.category.value,
            description=item_data.description,
            sort_order=sort_order,
        )
        db.add(item)
        db.flush()
    return success_response(
        message="Menu item created",
        data={"id": item.id, "name": item.name, "category": item.category},
        status_code=201
    )

# -------- Guests --------

@router.get("/events/{event_id}/guests")
async def search_guests(
    event_id: int,
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Search and list guests for an event"""
    event = _planner_event(db, event_id, planner_id)
    guests = GuestService.list_guests(db, event, search)
    pagination = Pagination(page=page, per_page=per_page, total=len(guests))
    page_of_guests = guests[pagination.offset:pagination.offset + per_page]

    return success_response(
        message="Guests retrieved successfully",
        data={
            "guests": [GuestResponse.model_validate(g).model_dump() for g in page_of_guests],
            "pagination": pagination.to_dict()
        }
    )

@router.post("/events/{event_id}/guests")
async def create_guest(
    event_id: int,
    guest_data: GuestCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Add one guest by hand"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = GuestService.create_guest(
            db, event,
            first_name=guest_data.first_name,
            last_name=guest_data.last_name,
            phone=guest_data.phone,
            email=guest_data.email,
            tier_id=guest_data.tier_id,
            channel=InviteChannel.MANUAL,
        )
    db.refresh(guest)
    return success_response(
        message="Guest created",
        data=GuestResponse.model_validate(guest).model_dump(),
        status_code=201
    )

@router.delete("/events/{event_id}/guests/{guest_id}")
async def remove_guest(
    event_id: int,
    guest_id: int,
    override: bool = Query(False),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = _planner_guest(db, event, guest_id)
        GuestService.remove_guest(db, event, guest, override=override)

    await checkin_validator.broadcast_seating_update(event, "guest_removed")
    return success_response(message="Guest removed", data={"deleted_guest_id": guest_id})

@router.post("/events/{event_id}/guests/{guest_id}/reassign")
async def reassign_guest(
    event_id: int,
    guest_id: int,
    body: GuestReassign,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Move a guest to a specific table"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = _planner_guest(db, event, guest_id)
        GuestService.reassign_table(db, event, guest, body.table_number)

    await checkin_validator.broadcast_seating_update(event, "guest_reassigned")
    db.refresh(guest)
    return success_response(
        message=f"Guest moved to table {body.table_number}",
        data=GuestResponse.model_validate(guest).model_dump()
    )

@router.post("/events/{event_id}/guests/{guest_id}/promote")
async def promote_guest(
    event_id: int,
    guest_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Confirm a waitlisted guest"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = _planner_guest(db, event, guest_id)
        GuestService.promote(db, event, guest)
    db.refresh(guest)
    return success_response(
        message="Guest confirmed",
        data=GuestResponse.model_validate(guest).model_dump()
    )

@router.post("/events/{event_id}/guests/{guest_id}/reset")
async def reset_guest_credential(
    event_id: int,
    guest_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Return a guest to PENDING so they can RSVP again"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = _planner_guest(db, event, guest_id)
        GuestService.reset_credential(db, event, guest)
    db.refresh(guest)
    return success_response(
        message="Invitation reset",
        data=GuestResponse.model_validate(guest).model_dump()
    )

@router.get("/events/{event_id}/guests/{guest_id}/qr.png")
async def guest_qr(
    event_id: int,
    guest_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Gate QR for a guest, minting their token if they have none yet"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        guest = _planner_guest(db, event, guest_id)
        credential = InviteCredentialIssuer.issue(db, event, guest=guest)

    return Response(
        content=QRService.generate_guest_qr(credential.value),
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=guest_{guest_id}.png"}
    )

# -------- Import / export --------

@router.get("/events/{event_id}/template.xlsx")
async def download_template(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Download the guest list template"""
    event = _planner_event(db, event_id, planner_id)
    return Response(
        content=GuestImportService.create_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename=guest_template_{event.public_code}.xlsx"}
    )

@router.post("/events/{event_id}/upload")
async def upload_excel(
    event_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Import a guest list; all rows are created or none"""
    event = _planner_event(db, event_id, planner_id)

    # Validate file type
    if not file.filename.endswith(('.xlsx', '.xls')):
        return error_response(
            message="Invalid file format. Please upload an Excel file (.xlsx or .xls)",
            status_code=400
        )

    file_content = await file.read()
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        return error_response(message="File too large", status_code=413)

    success, errors, processed_count = GuestImportService.process_upload(file_content, event, db)
    if not success:
        db.rollback()
        return error_response(
            message="Excel file validation failed",
            details=errors,
            status_code=422
        )
    db.commit()

    await checkin_validator.broadcast_seating_update(event, "guests_imported")
    return success_response(
        message=f"Excel file processed successfully. {processed_count} guests imported.",
        data={
            "processed_count": processed_count,
            "filename": file.filename
        }
    )

@router.get("/events/{event_id}/export.xlsx")
async def export_guests(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Export current guest data to Excel"""
    event = _planner_event(db, event_id, planner_id)
    return Response(
        content=GuestImportService.export_current_data(event, db, include_checkin=True),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename=guests_{event.public_code}.xlsx"}
    )

# -------- Invites, release, staff --------

@router.post("/events/{event_id}/send-invites")
async def send_invites(
    event_id: int,
    body: SendInvitesRequest,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Message guests their invite link over WhatsApp"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        summary = InviteDeliveryService().send_invites(db, event, body.guest_ids)
    return success_response(message=f"{summary['sent']} invites sent", data=summary)

@router.post("/events/{event_id}/release-due-tables")
async def release_due_tables(
    event_id: int,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """Run the reserved table release now instead of waiting for the job"""
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        released = ReservationReleaseScheduler.release_due_tables(db, event)

    if released:
        await checkin_validator.broadcast_seating_update(event, "tables_released")
    return success_response(
        message=f"{len(released)} tables released",
        data={"released_table_ids": released}
    )

@router.post("/events/{event_id}/ushers")
async def create_usher(
    event_id: int,
    usher_data: UsherCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        usher = Usher(
            event_id=event.id,
            name=usher_data.name,
            phone=usher_data.phone,
            role=usher_data.role.value,
            access_token=mint_access_token(),
        )
        db.add(usher)
        db.flush()
    return success_response(
        message="Usher created",
        data={"id": usher.id, "name": usher.name, "role": usher.role, "access_token": usher.access_token},
        status_code=201
    )

@router.post("/events/{event_id}/vendors")
async def create_vendor(
    event_id: int,
    vendor_data: VendorCreate,
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    with transaction(db):
        event = _planner_event(db, event_id, planner_id)
        vendor = Vendor(
            event_id=event.id,
            name=vendor_data.name,
            role=vendor_data.role.value,
            access_token=mint_access_token(),
        )
        db.add(vendor)
        db.flush()
    return success_response(
        message="Vendor created",
        data={"id": vendor.id, "name": vendor.name, "role": vendor.role, "access_token": vendor.access_token},
        status_code=201
    )

@router.get("/events/{event_id}/aggregate")
async def preview_aggregate(
    event_id: int,
    role: VendorRole = Query(VendorRole.CATERER),
    db: Session = Depends(get_db),
    planner_id: str = Depends(verify_planner)
):
    """What a vendor of ``role`` would see"""
    event = _planner_event(db, event_id, planner_id)
    view = VendorAggregateProjector.project(db, event, role)
    return success_response(message="Aggregate retrieved", data=view.model_dump())
