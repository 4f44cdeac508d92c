"""Daily capacity policy per professional type."""

import logging
from typing import Dict, Optional

from ..models import ACTIVE_STATUSES, Professional, ProfessionalType
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)


class CapacityAllocator:
    """
    Caps the number of active bookings a professional can hold on one date.

    Emergency bookings carry no date and never count against the cap.
    """

    def __init__(
        self,
        store: BookingStore,
        default_daily_capacity: int = 10,
        type_capacities: Optional[Dict[ProfessionalType, int]] = None,
    ):
        """
        Initialize the allocator.

        Args:
            store: Booking store
            default_daily_capacity: Cap for types without an explicit entry
            type_capacities: Per-type caps, e.g. a higher one for pharmacists
        """
        self.store = store
        self.default_daily_capacity = default_daily_capacity
        self.type_capacities = dict(type_capacities or {})

    def daily_cap(self, professional: Professional) -> int:
        """Cap for a professional; a per-professional override wins."""
        if professional.max_daily_slots is not None:
            return professional.max_daily_slots
        return self.type_capacities.get(
            professional.professional_type, self.default_daily_capacity
        )

    async def active_count(self, professional_id: str, date: str) -> int:
        bookings = await self.store.find_bookings(BookingQuery(
            professional_id=professional_id,
            date=date,
            statuses=ACTIVE_STATUSES,
        ))
        return len(bookings)

    async def remaining(self, professional: Professional, date: str) -> int:
        """Remaining bookable slots for the date, never negative."""
        used = await self.active_count(professional.id, date)
        remaining = max(self.daily_cap(professional) - used, 0)
        logger.debug(f"Capacity for {professional.id} on {date}: {remaining} remaining ({used} used)")
        return remaining
