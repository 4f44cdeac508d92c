"""Queue positions for a professional's scheduled bookings on one date."""

import logging
from typing import List

from ..models import Booking
from ..models.booking import QUEUED_STATUSES
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)


class QueuePositionManager:
    """
    Keeps 1-based, contiguous queue positions over the confirmed and ready
    bookings of a professional/date, ordered by scheduled instant.

    The store recomputes positions in one atomic step serialized per
    professional+date, so every instance of the service sees the same order.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    async def get_queue(self, professional_id: str, date: str) -> List[Booking]:
        """Queued bookings in order."""
        return await self.store.find_bookings(BookingQuery(
            professional_id=professional_id,
            date=date,
            statuses=QUEUED_STATUSES,
            is_emergency=False,
            order_by_schedule=True,
        ))

    async def resequence(self, professional_id: str, date: str) -> List[Booking]:
        """
        Recompute positions after an insertion or removal.

        Returns:
            The queue with fresh positions applied
        """
        queue = await self.store.resequence_queue(professional_id, date)
        logger.info(f"Resequenced queue for {professional_id} on {date}: {len(queue)} queued")
        return queue
