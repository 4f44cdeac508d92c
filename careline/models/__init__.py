"""Data models package."""

from .booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    CallHandle,
    ConsultationMedium,
    PaymentStatus,
    ProfessionalStats,
    TimeSlot,
)
from .professional import AvailabilityWindow, Professional, ProfessionalType

__all__ = [
    "ACTIVE_STATUSES",
    "Booking",
    "BookingStatus",
    "CallHandle",
    "ConsultationMedium",
    "PaymentStatus",
    "ProfessionalStats",
    "TimeSlot",
    "AvailabilityWindow",
    "Professional",
    "ProfessionalType",
]
