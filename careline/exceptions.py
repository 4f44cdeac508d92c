"""Domain errors raised by the booking engine and mapped to HTTP by the API."""

from typing import Optional


class BookingError(Exception):
    """Base class for errors returned synchronously to a caller."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code.replace("_", " "))
        self.message = message or self.code.replace("_", " ")

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    status_code = 409


class DuplicateActiveBooking(BookingError):
    code = "duplicate_active_booking"
    status_code = 409


class DuplicateActiveEmergency(BookingError):
    code = "duplicate_active_emergency"
    status_code = 409


class EmergencyNotAccepted(BookingError):
    code = "emergency_not_accepted"
    status_code = 409


class InsufficientBalance(BookingError):
    code = "insufficient_balance"
    status_code = 402


class EmergencyExpired(BookingError):
    code = "emergency_expired"
    status_code = 410


class Unauthorized(BookingError):
    code = "unauthorized"
    status_code = 403


class CallNotReady(BookingError):
    code = "call_not_ready"
    status_code = 409


class SessionJoinTimeout(BookingError):
    code = "session_join_timeout"
    status_code = 504


class BookingNotFound(BookingError):
    code = "booking_not_found"
    status_code = 404


class ProfessionalNotFound(BookingError):
    code = "professional_not_found"
    status_code = 404


class IllegalTransition(BookingError):
    """A command was issued from a status that does not allow it."""

    code = "illegal_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move booking from {current} to {target}")
        self.current = current
        self.target = target


class EscrowFailed(BookingError):
    """The wallet did not complete a hold/release/refund; the transition was aborted."""

    code = "escrow_failed"
    status_code = 502


class VideoProviderError(BookingError):
    """Non-retryable failure from the video provider."""

    code = "video_provider_error"
    status_code = 502
