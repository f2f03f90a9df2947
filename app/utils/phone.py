"""
Phone number helpers
"""

import re

from app.core.config import settings


def normalize_phone_number(phone: str) -> str:
    """Normalize a phone number to E.164, treating a leading 0 as a local number"""
    digits = re.sub(r"[\s\-().]", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("+"):
        return digits
    if digits.startswith("0") and len(digits) == 11:
        return f"+{settings.DEFAULT_COUNTRY_CODE}{digits[1:]}"
    return f"+{digits}"
