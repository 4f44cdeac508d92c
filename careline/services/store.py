"""Document store interface used by the booking engine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..models import Booking, BookingStatus, Professional


@dataclass
class BookingQuery:
    """
    Equality/range filter over bookings.

    Every field left as None is not filtered on. Results are ordered by
    scheduled_at ascending (then created_at) when order_by_schedule is set,
    otherwise by created_at descending.
    """
    professional_id: Optional[str] = None
    patient_id: Optional[str] = None
    date: Optional[str] = None
    statuses: Optional[FrozenSet[BookingStatus]] = None
    is_emergency: Optional[bool] = None
    reminder_sent: Optional[bool] = None
    scheduled_after: Optional[datetime] = None     # exclusive
    scheduled_until: Optional[datetime] = None     # inclusive
    deadline_before: Optional[datetime] = None     # exclusive
    order_by_schedule: bool = False
    limit: Optional[int] = None

    def matches(self, booking: Booking) -> bool:
        """Evaluate the filter against a booking in memory."""
        if self.professional_id is not None and booking.professional_id != self.professional_id:
            return False
        if self.patient_id is not None and booking.patient_id != self.patient_id:
            return False
        if self.date is not None and booking.date != self.date:
            return False
        if self.statuses is not None and booking.status not in self.statuses:
            return False
        if self.is_emergency is not None and booking.is_emergency != self.is_emergency:
            return False
        if self.reminder_sent is not None and booking.reminder_sent != self.reminder_sent:
            return False
        if self.scheduled_after is not None:
            if booking.scheduled_at is None or booking.scheduled_at <= self.scheduled_after:
                return False
        if self.scheduled_until is not None:
            if booking.scheduled_at is None or booking.scheduled_at > self.scheduled_until:
                return False
        if self.deadline_before is not None:
            if booking.emergency_deadline is None or booking.emergency_deadline >= self.deadline_before:
                return False
        return True


class BookingStore(ABC):
    """
    Persistence operations the engine relies on.

    Implementations must make reserve_slot, insert_emergency,
    compare_and_set and resequence_queue atomic with respect to concurrent
    callers.
    """

    # ==================== Professionals ====================

    @abstractmethod
    async def get_professional(self, professional_id: str) -> Optional[Professional]:
        """Get a professional by ID."""

    @abstractmethod
    async def update_professional(self, professional_id: str, updates: Dict[str, Any]) -> Optional[Professional]:
        """Apply field updates to a professional."""

    @abstractmethod
    async def increment_completed(self, professional_id: str) -> None:
        """Increment a professional's completed-consultation counter."""

    # ==================== Bookings ====================

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get a booking by ID."""

    @abstractmethod
    async def find_bookings(self, query: BookingQuery) -> List[Booking]:
        """Run an equality/range query over bookings."""

    @abstractmethod
    async def reserve_slot(self, booking: Booking, capacity: int) -> Booking:
        """
        Insert a scheduled booking if, at write time, its label is free, the
        professional/date active count is below capacity and the patient has
        no other active booking with the professional.

        Raises:
            SlotUnavailable: label taken or capacity reached
            DuplicateActiveBooking: patient already has an active booking
        """

    @abstractmethod
    async def insert_emergency(self, booking: Booking) -> Booking:
        """
        Insert an emergency booking if the patient has no other active
        emergency at write time.

        Raises:
            DuplicateActiveEmergency
        """

    @abstractmethod
    async def compare_and_set(
        self,
        booking_id: str,
        expected: Iterable[BookingStatus],
        updates: Dict[str, Any],
        where: Optional[Dict[str, Any]] = None,
    ) -> Optional[Booking]:
        """
        Apply updates only if the booking's status is in expected and every
        extra equality in where holds.

        Returns:
            The updated booking, or None if the precondition did not hold
        """

    @abstractmethod
    async def resequence_queue(self, professional_id: str, date: str) -> List[Booking]:
        """
        Renumber the confirmed/ready scheduled bookings of a professional/date
        as 1..N by scheduled instant, serialized with reservations on the same
        key. Only rows whose position changes are written.

        Returns:
            The queue in order, with fresh positions
        """
