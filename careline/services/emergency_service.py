"""Emergency fast path: immediate consultations with a response deadline."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..exceptions import DuplicateActiveEmergency, EmergencyExpired, EmergencyNotAccepted
from ..models import Booking, BookingStatus, Professional
from ..utils.helpers import utc_now
from .escrow import EscrowCoordinator
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)

ACTIVE_EMERGENCY_STATUSES = frozenset({
    BookingStatus.EMERGENCY_PENDING,
    BookingStatus.EMERGENCY_CONFIRMED,
    BookingStatus.IN_PROGRESS,
})

EXPIRED_REASON = "emergency_expired"


class EmergencyService:
    """
    Admission rules and the acceptance deadline for emergency bookings.

    Emergencies skip the slot grid and the queue. A professional must accept
    within the response window; after that the booking can only be expired
    by the reconciler.
    """

    def __init__(
        self,
        store: BookingStore,
        escrow: EscrowCoordinator,
        clock: Optional[Callable[[], datetime]] = None,
        emergency_fee: int = 10000,
        response_minutes: int = 10,
    ):
        self.store = store
        self.escrow = escrow
        self.clock = clock or utc_now
        self.emergency_fee = emergency_fee
        self.response_window = timedelta(minutes=response_minutes)

    async def admit(
        self,
        professional: Professional,
        patient_id: str,
        reason: Optional[str] = None,
        patient_name: str = "",
    ) -> Booking:
        """
        Check an emergency request and build the pending booking for it.

        Raises:
            EmergencyNotAccepted: professional offline or not taking emergencies
            InsufficientBalance: patient cannot cover the emergency fee
            DuplicateActiveEmergency: patient already has an open emergency
        """
        if not professional.can_take_emergency:
            raise EmergencyNotAccepted(f"{professional.name} is not taking emergency consultations right now")

        await self.escrow.ensure_balance(patient_id, self.emergency_fee)

        existing = await self.store.find_bookings(BookingQuery(
            patient_id=patient_id,
            is_emergency=True,
            statuses=ACTIVE_EMERGENCY_STATUSES,
            limit=1,
        ))
        if existing:
            raise DuplicateActiveEmergency(f"Emergency {existing[0].id} is still open")

        now = self.clock()
        return Booking(
            professional_id=professional.id,
            professional_name=professional.name,
            patient_id=patient_id,
            patient_name=patient_name,
            reason=reason,
            status=BookingStatus.EMERGENCY_PENDING,
            fee=self.emergency_fee,
            is_emergency=True,
            emergency_deadline=now + self.response_window,
            created_at=now,
        )

    def is_expired(self, booking: Booking, now: Optional[datetime] = None) -> bool:
        if booking.emergency_deadline is None:
            return False
        return (now or self.clock()) > booking.emergency_deadline

    def ensure_open(self, booking: Booking) -> None:
        """Raise EmergencyExpired if the response window has passed."""
        if self.is_expired(booking):
            raise EmergencyExpired(f"Emergency {booking.id} expired at {booking.emergency_deadline}")
