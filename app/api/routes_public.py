"""
Public API routes - no planner authentication required
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import EventNotFound
from app.models import Vendor
from app.models.enums import InviteModel, VendorRole
from app.services.aggregate_service import VendorAggregateProjector
from app.services.qr_service import QRService
from app.services.repositories import EventRepo
from app.utils.security import verify_vendor
from app.utils.responses import success_response

router = APIRouter()

@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    db.execute(text("SELECT 1"))
    return {"status": "ok"}

@router.get("/events/{public_code}/qr.png")
async def get_qr_code(
    public_code: str,
    db: Session = Depends(get_db)
):
    """QR of the shared registration link (OPEN events only)"""
    event = EventRepo.get_by_public_code(db, public_code)
    if not event or event.invite_model != InviteModel.OPEN.value:
        raise EventNotFound("Event not found")

    qr_bytes = QRService.generate_event_qr(public_code, event.invite_code)

    return Response(
        content=qr_bytes,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=qr_{public_code}.png"}
    )

@router.get("/vendor/aggregate")
async def vendor_aggregate(
    db: Session = Depends(get_db),
    vendor: Vendor = Depends(verify_vendor)
):
    """Headcounts for the vendor's event; no guest details"""
    event = EventRepo.get_by_id(db, vendor.event_id)
    if not event:
        raise EventNotFound("Event not found")
    view = VendorAggregateProjector.project(db, event, VendorRole(vendor.role))
    return success_response(message="Aggregate retrieved", data=view.model_dump())
