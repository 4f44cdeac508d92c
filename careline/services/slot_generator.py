"""Slot generator for available consultation times."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Set

from ..models import ACTIVE_STATUSES, AvailabilityWindow, Professional, TimeSlot
from ..utils.helpers import (
    label_to_minutes,
    minutes_to_label,
    parse_date,
    scheduled_instant,
    utc_now,
)
from .capacity import CapacityAllocator
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)


def partition_window(window: AvailabilityWindow) -> List[str]:
    """
    Split a template window into fixed-width labels.

    The window is half-open [start, end); a trailing remainder shorter than
    the slot width is dropped.
    """
    start = label_to_minutes(window.start)
    end = label_to_minutes(window.end)
    width = window.slot_duration_minutes
    return [minutes_to_label(m) for m in range(start, end - width + 1, width)]


class SlotGenerator:
    """Derives bookable time labels from a professional's weekly template."""

    def __init__(
        self,
        store: BookingStore,
        capacity: CapacityAllocator,
        timezone: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize slot generator.

        Args:
            store: Booking store used to find consumed labels
            capacity: Daily capacity policy
            timezone: Timezone the template labels are expressed in
            clock: Returns the current UTC time (injectable for tests)
        """
        self.store = store
        self.capacity = capacity
        self.timezone = timezone
        self.clock = clock or utc_now

    def template_labels(self, professional: Professional, date: str) -> List[str]:
        """All labels the template yields for the date's weekday."""
        window = professional.window_for(parse_date(date).weekday())
        if window is None:
            return []
        return partition_window(window)

    async def booked_labels(self, professional_id: str, date: str) -> Set[str]:
        """Labels held by active bookings on the date."""
        bookings = await self.store.find_bookings(BookingQuery(
            professional_id=professional_id,
            date=date,
            statuses=ACTIVE_STATUSES,
        ))
        return {b.time for b in bookings if b.time}

    async def get_available_slots(
        self,
        professional: Professional,
        date: str,
    ) -> List[TimeSlot]:
        """
        Get bookable slots for a professional on a date.

        Args:
            professional: The professional being booked
            date: Date in YYYY-MM-DD format

        Returns:
            Free labels in template order, truncated to remaining daily capacity
        """
        labels = self.template_labels(professional, date)
        if not labels:
            return []

        remaining = await self.capacity.remaining(professional, date)
        if remaining == 0:
            return []

        booked = await self.booked_labels(professional.id, date)
        now = self.clock()

        window = professional.window_for(parse_date(date).weekday())
        slots = []
        for label in labels:
            if label in booked:
                continue
            # Skip labels that have already started
            if scheduled_instant(date, label, self.timezone) <= now:
                continue
            slots.append(TimeSlot(
                date=date,
                time=label,
                duration_minutes=window.slot_duration_minutes,
            ))
            if len(slots) == remaining:
                break

        return slots

    async def is_bookable(self, professional: Professional, date: str, time: str) -> bool:
        """Whether the label currently appears in live availability."""
        slots = await self.get_available_slots(professional, date)
        return any(slot.time == time for slot in slots)
