"""Booking data models and the booking state machine's transition table."""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional
from pydantic import BaseModel, Field

from ..exceptions import IllegalTransition


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""
    PENDING_CONFIRMATION = "pending_confirmation"
    EMERGENCY_PENDING = "emergency_pending"
    CONFIRMED = "confirmed"
    EMERGENCY_CONFIRMED = "emergency_confirmed"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    REJECTED_DURING_CALL = "rejected_during_call"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    def can_transition_to(self, target: "BookingStatus") -> bool:
        """Check the transition table for a legal move."""
        return target in TRANSITIONS.get(self, frozenset())


class PaymentStatus(str, Enum):
    """Escrow state of a booking's fee."""
    PENDING = "pending"
    HELD = "held"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class ConsultationMedium(str, Enum):
    VIDEO = "video"
    CHAT = "chat"


TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REJECTED,
    BookingStatus.REJECTED_DURING_CALL,
})

# Statuses that consume a slot / count against capacity
ACTIVE_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.PENDING_CONFIRMATION,
    BookingStatus.CONFIRMED,
    BookingStatus.READY,
    BookingStatus.IN_PROGRESS,
    BookingStatus.EMERGENCY_PENDING,
    BookingStatus.EMERGENCY_CONFIRMED,
})

QUEUED_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.READY,
})

# Emergency states are only reachable from emergency_pending and the
# scheduled-only states only from pending_confirmation, so each path is
# closed under this table.
TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_CONFIRMATION: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.EMERGENCY_PENDING: frozenset({
        BookingStatus.EMERGENCY_CONFIRMED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.READY,
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.READY: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.EMERGENCY_CONFIRMED: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.IN_PROGRESS: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.REJECTED_DURING_CALL,
    }),
}


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise IllegalTransition unless current -> target is in the table."""
    if not BookingStatus(current).can_transition_to(target):
        raise IllegalTransition(current.value, target.value)


class TimeSlot(BaseModel):
    """Represents a bookable time label."""
    date: str = Field(..., description="Date in YYYY-MM-DD format")
    time: str = Field(..., description="Time in HH:MM format (24-hour)")
    duration_minutes: int = Field(default=30, description="Slot duration in minutes")


class Booking(BaseModel):
    """Represents a consultation booking on either the scheduled or emergency path."""
    id: Optional[str] = Field(default=None, description="Unique booking ID")
    professional_id: str = Field(...)
    professional_name: str = Field(default="")
    patient_id: str = Field(...)
    patient_name: str = Field(default="")

    # Scheduled path
    date: Optional[str] = Field(default=None, description="Booking date (YYYY-MM-DD)")
    time: Optional[str] = Field(default=None, description="Booking time label (HH:MM)")
    scheduled_at: Optional[datetime] = Field(default=None, description="Slot start as UTC instant")

    medium: ConsultationMedium = Field(default=ConsultationMedium.VIDEO)
    reason: Optional[str] = Field(default=None)
    status: BookingStatus = Field(default=BookingStatus.PENDING_CONFIRMATION)
    fee: int = Field(default=0, ge=0)
    queue_position: int = Field(default=0, ge=0)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)

    # Emergency path
    is_emergency: bool = Field(default=False)
    emergency_deadline: Optional[datetime] = Field(default=None)

    # Call session
    call_session_id: Optional[str] = Field(default=None)
    can_start_call: bool = Field(default=False)
    call_started_at: Optional[datetime] = Field(default=None)
    call_ended_at: Optional[datetime] = Field(default=None)
    session_expires_at: Optional[datetime] = Field(default=None)

    reminder_sent: bool = Field(default=False)
    rated: bool = Field(default=False)
    cancellation_reason: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def involves(self, user_id: str) -> bool:
        """Whether the user is either party of this booking."""
        return user_id in (self.professional_id, self.patient_id)

    def counterpart_of(self, user_id: str) -> str:
        """The other party of the booking."""
        return self.patient_id if user_id == self.professional_id else self.professional_id

    def to_summary(self) -> str:
        """Short human-readable summary for notifications and logs."""
        if self.is_emergency:
            return f"Emergency consultation with {self.professional_name or self.professional_id}"
        return f"Consultation with {self.professional_name or self.professional_id} on {self.date} at {self.time}"


class CallHandle(BaseModel):
    """What a participant needs to join a call session."""
    session_id: str
    token: str
    url: Optional[str] = None


class ProfessionalStats(BaseModel):
    """Aggregated booking figures for a professional's dashboard."""
    total_bookings: int = 0
    completed_consultations: int = 0
    cancelled_consultations: int = 0
    active_bookings: int = 0
    total_earnings: int = 0
