"""
WhatsApp invite delivery over the Meta Cloud API
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models import Event, Guest
from app.models.enums import InviteChannel, InviteModel
from app.services.credentials import InviteCredentialIssuer
from app.services.qr_service import QRService
from app.utils.phone import normalize_phone_number

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    provider_error: Optional[str] = None


class WhatsAppClient:
    """Thin client for the Graph API messages endpoint"""

    def __init__(self, access_token: Optional[str] = None, phone_number_id: Optional[str] = None,
                 api_url: Optional[str] = None, timeout: Optional[float] = None):
        self.access_token = access_token or settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id or settings.WHATSAPP_PHONE_NUMBER_ID
        self.api_url = (api_url or settings.WHATSAPP_API_URL).rstrip("/")
        self.timeout = timeout or settings.WHATSAPP_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def send(self, to: str, message: str) -> SendResult:
        """Send a plain text message; never raises for provider failures"""
        if not self.configured:
            return SendResult(success=False, provider_error="WhatsApp is not connected")

        # Graph API expects the number without the leading +
        recipient = normalize_phone_number(to).lstrip("+")
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": message},
        }

        try:
            response = requests.post(
                f"{self.api_url}/{self.phone_number_id}/messages",
                json=payload,
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"[whatsapp] Error sending to {recipient}: {e}")
            return SendResult(success=False, provider_error=str(e))

        if response.status_code == 200:
            logger.info(f"[whatsapp] Sent to {recipient}")
            return SendResult(success=True)

        try:
            error = response.json().get("error", {}).get("message") or response.text
        except ValueError:
            error = response.text
        logger.warning(f"[whatsapp] Failed to send to {recipient}. Status: {response.status_code}: {error}")
        return SendResult(success=False, provider_error=error)


def build_invite_message(event: Event, guest: Guest, invite_link: str) -> str:
    return "\n".join([
        f"Hello {guest.first_name}",
        "",
        f"You're invited to *{event.name}*.",
        "",
        "Click the link below to RSVP and confirm your attendance:",
        invite_link,
        "",
        "We look forward to celebrating with you!",
    ])


class InviteDeliveryService:
    """Sends invite links and records delivery on the guest"""

    def __init__(self, client: Optional[WhatsAppClient] = None):
        self.client = client or WhatsAppClient()

    def invite_link(self, db: Session, event: Event, guest: Guest) -> str:
        if event.invite_model == InviteModel.CLOSED.value:
            credential = InviteCredentialIssuer.issue(db, event, guest=guest)
        else:
            credential = InviteCredentialIssuer.issue(db, event)
        return QRService.get_invite_url(event.public_code, credential.value)

    def send_invites(self, db: Session, event: Event, guest_ids: List[int]) -> Dict[str, object]:
        summary = {"sent": 0, "failed": 0, "no_phone": 0, "errors": []}
        if not guest_ids:
            return summary

        guests = db.query(Guest).filter(Guest.event_id == event.id, Guest.id.in_(guest_ids)).all()
        for guest in guests:
            if not guest.phone:
                summary["no_phone"] += 1
                continue

            message = build_invite_message(event, guest, self.invite_link(db, event, guest))
            result = self.client.send(guest.phone, message)
            if result.success:
                guest.invite_sent_at = datetime.utcnow()
                guest.invite_channel = InviteChannel.WHATSAPP.value
                summary["sent"] += 1
            else:
                summary["failed"] += 1
                summary["errors"].append(result.provider_error or "unknown")
        db.flush()

        logger.info(f"Event {event.id}: invites sent={summary['sent']} failed={summary['failed']} "
                    f"no_phone={summary['no_phone']}")
        return summary
