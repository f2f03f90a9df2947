"""
Admission engine error taxonomy

Every invariant violation raised by the services is one of these. Routes never
build error payloads for them by hand: the exception handler registered in
main.py renders them with the standard ErrorResponse envelope.
"""

from typing import Any, Optional

GENERIC_INVITE_MESSAGE = "Invalid or already used invitation"


class AdmissionError(Exception):
    """Base class for admission and seating failures"""

    error_code = "admission_error"
    status_code = 400
    # Shown to guests; None means the detailed message is safe to show
    public_message: Optional[str] = None

    def __init__(self, message: str = "", details: Any = None):
        super().__init__(message or self.error_code)
        self.message = message or self.error_code
        self.details = details

    def client_message(self) -> str:
        return self.public_message or self.message

    def client_error_code(self) -> str:
        return self.error_code

    def client_status_code(self) -> int:
        return self.status_code


class CredentialError(AdmissionError):
    """Credential failures share one public message so guesses learn nothing"""

    status_code = 400
    public_message = GENERIC_INVITE_MESSAGE

    def client_error_code(self) -> str:
        return "invalid_invitation"

    def client_status_code(self) -> int:
        return 400


class CredentialNotFound(CredentialError):
    error_code = "credential_not_found"
    status_code = 404


class CredentialMismatch(CredentialNotFound):
    """CLOSED model token that does not match exactly one guest"""

    error_code = "credential_mismatch"


class CredentialAlreadyRedeemed(CredentialError):
    error_code = "credential_already_redeemed"
    status_code = 409


class CredentialExpired(CredentialError):
    error_code = "credential_expired"
    status_code = 410


class OtpRequired(AdmissionError):
    error_code = "otp_required"
    status_code = 403
    public_message = "Please verify your phone number to continue"


class CapacityExceeded(AdmissionError):
    """Raised for planners with the name of what is full; guests get a WaitlistSignal"""

    error_code = "capacity_exceeded"
    status_code = 409

    def __init__(self, resource: str, name: str):
        super().__init__(f"{resource} '{name}' is full", details={"resource": resource, "name": name})
        self.resource = resource
        self.name = name


class EventNotFound(AdmissionError):
    error_code = "event_not_found"
    status_code = 404


class GuestNotFound(AdmissionError):
    error_code = "guest_not_found"
    status_code = 404


class TierNotFound(AdmissionError):
    error_code = "tier_not_found"
    status_code = 404


class TableNotFound(AdmissionError):
    error_code = "table_not_found"
    status_code = 404


class TableNotEligible(AdmissionError):
    """Reserved table asked to seat a guest from another tier"""

    error_code = "table_not_eligible"
    status_code = 409


class DuplicateGuest(AdmissionError):
    error_code = "duplicate_guest"
    status_code = 409


class IllegalTransition(AdmissionError):
    error_code = "illegal_transition"
    status_code = 409

    def __init__(self, source: str, target: str):
        super().__init__(f"Cannot move guest from {source} to {target}",
                         details={"from": source, "to": target})
        self.source = source
        self.target = target


class ReleaseRaceLost(AdmissionError):
    """The release job lost the guest to a check-in that landed first"""

    error_code = "release_race_lost"
    status_code = 409


class InvalidGuestData(AdmissionError):
    error_code = "invalid_guest_data"
    status_code = 422


class DuplicateTable(AdmissionError):
    error_code = "duplicate_table"
    status_code = 409


class AdmittedGuestsExist(AdmissionError):
    """Deleting an event would erase guests already through the gate"""

    error_code = "admitted_guests_exist"
    status_code = 409

