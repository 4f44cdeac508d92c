"""Supabase service for database operations."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from postgrest.exceptions import APIError
from supabase import create_client, Client

from ..exceptions import DuplicateActiveBooking, DuplicateActiveEmergency, SlotUnavailable
from ..models import Booking, BookingStatus, Professional
from ..utils.helpers import utc_now
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)

# Error messages raised by the reserve_* Postgres functions (sql/booking_functions.sql)
_RPC_ERRORS = {
    "slot_unavailable": SlotUnavailable,
    "duplicate_active_booking": DuplicateActiveBooking,
    "duplicate_active_emergency": DuplicateActiveEmergency,
}


def _to_column(value: Any) -> Any:
    """Convert a Python value to its JSON column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_to_column(v) for v in value]
    return value


def _to_row(updates: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _to_column(value) for key, value in updates.items()}


class SupabaseService(BookingStore):
    """Booking store backed by Supabase tables and Postgres functions."""

    def __init__(self, url: str, key: str):
        """Initialize Supabase client."""
        self.client: Client = create_client(url, key)
        logger.info("Supabase client initialized")

    # ==================== Professional Operations ====================

    async def get_professional(self, professional_id: str) -> Optional[Professional]:
        """Get a professional by ID."""
        response = (
            self.client.table("professionals")
            .select("*")
            .eq("id", professional_id)
            .limit(1)
            .execute()
        )
        if response.data:
            return Professional(**response.data[0])
        return None

    async def update_professional(
        self,
        professional_id: str,
        updates: Dict[str, Any]
    ) -> Optional[Professional]:
        """Update a professional's profile or status fields."""
        try:
            response = (
                self.client.table("professionals")
                .update(_to_row(updates))
                .eq("id", professional_id)
                .execute()
            )
            if response.data:
                return Professional(**response.data[0])
            return None
        except Exception as e:
            logger.error(f"Error updating professional {professional_id}: {e}")
            raise

    async def increment_completed(self, professional_id: str) -> None:
        """Increment a professional's completed consultation count."""
        try:
            self.client.rpc(
                "increment_consultations_completed",
                {"p_professional_id": professional_id},
            ).execute()
        except Exception as e:
            logger.error(f"Error incrementing completed count for {professional_id}: {e}")
            raise

    # ==================== Booking Operations ====================

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get a specific booking by ID."""
        response = (
            self.client.table("bookings")
            .select("*")
            .eq("id", booking_id)
            .limit(1)
            .execute()
        )
        if response.data:
            return Booking(**response.data[0])
        return None

    async def find_bookings(self, query: BookingQuery) -> List[Booking]:
        """Translate a BookingQuery into a PostgREST filter chain."""
        request = self.client.table("bookings").select("*")

        if query.professional_id is not None:
            request = request.eq("professional_id", query.professional_id)
        if query.patient_id is not None:
            request = request.eq("patient_id", query.patient_id)
        if query.date is not None:
            request = request.eq("date", query.date)
        if query.statuses is not None:
            request = request.in_("status", sorted(s.value for s in query.statuses))
        if query.is_emergency is not None:
            request = request.eq("is_emergency", query.is_emergency)
        if query.reminder_sent is not None:
            request = request.eq("reminder_sent", query.reminder_sent)
        if query.scheduled_after is not None:
            request = request.gt("scheduled_at", query.scheduled_after.isoformat())
        if query.scheduled_until is not None:
            request = request.lte("scheduled_at", query.scheduled_until.isoformat())
        if query.deadline_before is not None:
            request = request.lt("emergency_deadline", query.deadline_before.isoformat())

        if query.order_by_schedule:
            request = request.order("scheduled_at", desc=False).order("created_at", desc=False)
        else:
            request = request.order("created_at", desc=True)

        if query.limit:
            request = request.limit(query.limit)

        response = request.execute()
        return [Booking(**row) for row in response.data]

    async def reserve_slot(self, booking: Booking, capacity: int) -> Booking:
        """Insert a scheduled booking through the atomic reserve function."""
        return await self._reserve(
            "reserve_booking_slot",
            {"p_booking": self._insert_payload(booking), "p_capacity": capacity},
        )

    async def insert_emergency(self, booking: Booking) -> Booking:
        """Insert an emergency booking through the atomic reserve function."""
        return await self._reserve(
            "reserve_emergency_booking",
            {"p_booking": self._insert_payload(booking)},
        )

    async def compare_and_set(
        self,
        booking_id: str,
        expected: Iterable[BookingStatus],
        updates: Dict[str, Any],
        where: Optional[Dict[str, Any]] = None,
    ) -> Optional[Booking]:
        """Conditional update; PostgREST applies the filter and update in one statement."""
        row = _to_row({**updates, "updated_at": utc_now()})
        try:
            request = (
                self.client.table("bookings")
                .update(row)
                .eq("id", booking_id)
                .in_("status", sorted(s.value for s in expected))
            )
            for column, value in (where or {}).items():
                if value is None:
                    request = request.is_(column, "null")
                else:
                    request = request.eq(column, _to_column(value))
            response = request.execute()
        except Exception as e:
            logger.error(f"Error updating booking {booking_id}: {e}")
            raise

        if response.data:
            return Booking(**response.data[0])
        return None

    async def resequence_queue(self, professional_id: str, date: str) -> List[Booking]:
        """Renumber a professional/date queue inside one Postgres function call."""
        try:
            response = self.client.rpc(
                "resequence_queue",
                {"p_professional_id": professional_id, "p_date": date},
            ).execute()
        except Exception as e:
            logger.error(f"Error resequencing queue for {professional_id} on {date}: {e}")
            raise
        return [Booking(**row) for row in response.data or []]

    # ==================== Internals ====================

    @staticmethod
    def _insert_payload(booking: Booking) -> dict:
        now = utc_now()
        data = booking.model_dump(mode="json", exclude={"id"})
        data["created_at"] = data.get("created_at") or now.isoformat()
        data["updated_at"] = now.isoformat()
        return data

    async def _reserve(self, function: str, params: dict) -> Booking:
        try:
            response = self.client.rpc(function, params).execute()
        except APIError as e:
            error_cls = _RPC_ERRORS.get((e.message or "").strip())
            if error_cls:
                raise error_cls() from e
            logger.error(f"Error calling {function}: {e}")
            raise

        data = response.data
        if isinstance(data, list):
            data = data[0]
        created = Booking(**data)
        logger.info(f"Created booking {created.id} for patient {created.patient_id}")
        return created
