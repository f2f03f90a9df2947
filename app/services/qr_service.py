"""
QR code generation service
"""

import io
import qrcode

from app.core.config import settings

class QRService:
    """Service for generating QR codes"""
    
    @staticmethod
    def _render(data: str, format: str = 'PNG') -> bytes:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)
        
        # Create QR code image
        img = qr.make_image(fill_color="black", back_color="white")
        
        # Convert to bytes
        buffer = io.BytesIO()
        img.save(buffer, format=format)
        
        return buffer.getvalue()
    
    @staticmethod
    def generate_event_qr(public_code: str, invite_code: str = None, format: str = 'PNG') -> bytes:
        """QR for the shared registration link of an OPEN event"""
        return QRService._render(QRService.get_registration_url(public_code, invite_code), format)
    
    @staticmethod
    def generate_guest_qr(invite_token: str, format: str = 'PNG') -> bytes:
        """Gate QR: encodes only the guest's invite token"""
        return QRService._render(invite_token, format)
    
    @staticmethod
    def get_registration_url(public_code: str, invite_code: str = None) -> str:
        """Get the URL that the event QR code will redirect to"""
        url = f"{settings.BASE_URL}/guest/invite/{public_code}"
        if invite_code:
            url = f"{url}?code={invite_code}"
        return url
    
    @staticmethod
    def get_invite_url(public_code: str, invite_token: str) -> str:
        """Personal RSVP link sent to a guest"""
        return f"{settings.BASE_URL}/guest/invite/{public_code}?code={invite_token}"
