"""In-memory collaborators for exercising the booking engine without I/O."""

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx

from careline.exceptions import DuplicateActiveBooking, DuplicateActiveEmergency, SlotUnavailable
from careline.models import ACTIVE_STATUSES, Booking, BookingStatus, Professional
from careline.models.booking import QUEUED_STATUSES
from careline.services.notification_service import Notification
from careline.services.providers import BaseVideoProvider, CallParticipants, JoinGrant, SessionNotFoundError
from careline.services.store import BookingQuery, BookingStore
from careline.utils import KeyedLock


class FakeClock:
    """Callable clock that tests move forward explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryStore(BookingStore):
    """
    BookingStore with the locking of the Postgres functions: keyed locks for
    reservations and queue renumbering, one lock for compare-and-set.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.professionals: Dict[str, Professional] = {}
        self.bookings: Dict[str, Booking] = {}
        self.clock = clock
        self.fail_next_cas = False
        self.cas_calls = 0
        self.position_writes: List[tuple] = []
        self._lock = asyncio.Lock()
        self._keys = KeyedLock()
        self._ids = itertools.count(1)

    # ---- seeding ----

    def add_professional(self, professional: Professional) -> Professional:
        self.professionals[professional.id] = professional
        return professional

    def put_booking(self, booking: Booking) -> Booking:
        if booking.id is None:
            booking = booking.model_copy(update={"id": f"bk-{next(self._ids)}"})
        if booking.created_at is None:
            booking = booking.model_copy(update={"created_at": self._now()})
        self.bookings[booking.id] = booking
        return booking

    def _now(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return datetime(2026, 1, 1, tzinfo=timezone.utc)

    # ---- professionals ----

    async def get_professional(self, professional_id: str) -> Optional[Professional]:
        professional = self.professionals.get(professional_id)
        return professional.model_copy(deep=True) if professional else None

    async def update_professional(self, professional_id: str, updates: Dict[str, Any]) -> Optional[Professional]:
        professional = self.professionals.get(professional_id)
        if professional is None:
            return None
        updated = Professional.model_validate({**professional.model_dump(), **updates})
        self.professionals[professional_id] = updated
        return updated

    async def increment_completed(self, professional_id: str) -> None:
        professional = self.professionals[professional_id]
        self.professionals[professional_id] = professional.model_copy(
            update={"consultations_completed": professional.consultations_completed + 1}
        )

    # ---- bookings ----

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def find_bookings(self, query: BookingQuery) -> List[Booking]:
        found = [b for b in self.bookings.values() if query.matches(b)]
        if query.order_by_schedule:
            found.sort(key=lambda b: (b.scheduled_at, b.created_at))
        else:
            found.sort(key=lambda b: b.created_at, reverse=True)
        if query.limit:
            found = found[:query.limit]
        return found

    async def reserve_slot(self, booking: Booking, capacity: int) -> Booking:
        # Yield first so concurrent callers interleave before the check
        await asyncio.sleep(0)
        # Same lock keys and order as reserve_booking_slot in sql/booking_functions.sql
        async with self._keys.hold(("patient", booking.professional_id, booking.patient_id)):
            async with self._keys.hold((booking.professional_id, booking.date)):
                if any(
                    b.patient_id == booking.patient_id
                    and b.professional_id == booking.professional_id
                    and b.status in ACTIVE_STATUSES
                    for b in self.bookings.values()
                ):
                    raise DuplicateActiveBooking()
                same_day = [
                    b for b in self.bookings.values()
                    if b.professional_id == booking.professional_id
                    and b.date == booking.date
                    and b.status in ACTIVE_STATUSES
                ]
                if any(b.time == booking.time for b in same_day) or len(same_day) >= capacity:
                    raise SlotUnavailable()
                # The insert is a separate statement from the checks
                await asyncio.sleep(0)
                return self.put_booking(booking)

    async def insert_emergency(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        async with self._keys.hold(("emergency", booking.patient_id)):
            if any(
                b.patient_id == booking.patient_id and b.is_emergency and b.status in ACTIVE_STATUSES
                for b in self.bookings.values()
            ):
                raise DuplicateActiveEmergency()
            await asyncio.sleep(0)
            return self.put_booking(booking)

    async def compare_and_set(
        self,
        booking_id: str,
        expected: Iterable[BookingStatus],
        updates: Dict[str, Any],
        where: Optional[Dict[str, Any]] = None,
    ) -> Optional[Booking]:
        async with self._lock:
            self.cas_calls += 1
            if self.fail_next_cas:
                self.fail_next_cas = False
                return None
            booking = self.bookings.get(booking_id)
            if booking is None or booking.status not in set(expected):
                return None
            for field, value in (where or {}).items():
                if getattr(booking, field) != value:
                    return None
            updated = booking.model_copy(update={**updates, "updated_at": self._now()})
            self.bookings[booking_id] = updated
            return updated

    async def resequence_queue(self, professional_id: str, date: str) -> List[Booking]:
        async with self._keys.hold((professional_id, date)):
            queue = await self.find_bookings(BookingQuery(
                professional_id=professional_id,
                date=date,
                statuses=QUEUED_STATUSES,
                is_emergency=False,
                order_by_schedule=True,
            ))
            ordered = []
            for position, booking in enumerate(queue, start=1):
                if booking.queue_position != position:
                    self.position_writes.append((booking.id, position))
                    booking = booking.model_copy(update={"queue_position": position})
                    self.bookings[booking.id] = booking
                ordered.append(booking)
            return ordered


def _status_error(status_code: int, path: str) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", f"https://wallet.test{path}")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"{status_code} for {path}", request=request, response=response)


class FakeWallet:
    """
    Ledger with available and pending balances.

    Mutations are keyed by idempotency key; a repeated key is a no-op.
    Set fail_on to an operation name to make it raise.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances: Dict[str, int] = dict(balances or {})
        self.pending: Dict[str, int] = {}
        self.operations: List[tuple] = []
        self.fail_on: Set[str] = set()
        self._keys: Set[str] = set()

    def _check(self, operation: str, key: str) -> bool:
        if operation in self.fail_on:
            raise _status_error(503, f"/{operation}")
        if key in self._keys:
            return False
        self._keys.add(key)
        self.operations.append((operation, key))
        return True

    def ops(self, operation: str) -> List[tuple]:
        return [op for op in self.operations if op[0] == operation]

    async def get_balance(self, user_id: str) -> int:
        if "get_balance" in self.fail_on:
            raise httpx.ConnectError("wallet unreachable")
        return self.balances.get(user_id, 0)

    async def hold(self, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        if self.balances.get(patient_id, 0) < amount:
            raise _status_error(402, f"/wallets/{patient_id}/debit")
        if self._check("hold", idempotency_key):
            self.balances[patient_id] -= amount

    async def credit_pending(self, professional_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        if self._check("credit_pending", idempotency_key):
            self.pending[professional_id] = self.pending.get(professional_id, 0) + amount

    async def release(self, professional_id: str, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        if self._check("release", idempotency_key):
            self.pending[professional_id] -= amount
            self.balances[professional_id] = self.balances.get(professional_id, 0) + amount

    async def refund(self, professional_id: str, patient_id: str, amount: int, memo: str, idempotency_key: str) -> None:
        if self._check("refund", idempotency_key):
            self.pending[professional_id] = self.pending.get(professional_id, 0) - amount
            self.balances[patient_id] = self.balances.get(patient_id, 0) + amount

    async def close(self):
        pass


class FakeNotifier:
    """Records pushes instead of sending them."""

    def __init__(self):
        self.sent: List[tuple] = []
        self.scheduled: List[tuple] = []

    async def send_to_user(self, user_id: str, notification: Notification) -> bool:
        self.sent.append((user_id, notification))
        return True

    async def schedule_local(self, user_id: str, notification: Notification, fire_at: datetime) -> bool:
        self.scheduled.append((user_id, notification, fire_at))
        return True

    def titles_for(self, user_id: str) -> List[str]:
        return [n.title for uid, n in self.sent if uid == user_id]

    async def close(self):
        pass


class FakeVideoProvider(BaseVideoProvider):
    """
    Video provider whose new sessions stay invisible for a number of join
    attempts, like a room that has not propagated yet.
    """

    def __init__(self, not_found_attempts: int = 0):
        self.not_found_attempts = not_found_attempts
        self.sessions: Set[str] = set()
        self.ended: List[str] = []
        self.join_attempts = 0
        self.fail_join: Optional[Exception] = None
        self._attempts = itertools.count(1)

    async def create_call(self, participants: CallParticipants, max_duration_seconds: int) -> str:
        session_id = f"consultation_{participants.booking_id}_{next(self._attempts)}"
        self.sessions.add(session_id)
        return session_id

    async def join(self, session_id: str, participant_id: str, participant_name: str = "") -> JoinGrant:
        self.join_attempts += 1
        if self.fail_join is not None:
            raise self.fail_join
        if self.not_found_attempts > 0:
            self.not_found_attempts -= 1
            raise SessionNotFoundError(session_id)
        if session_id not in self.sessions:
            raise SessionNotFoundError(session_id)
        return JoinGrant(session_id=session_id, token=f"token-{participant_id}", url="wss://video.test")

    async def end_call(self, session_id: str) -> None:
        self.sessions.discard(session_id)
        self.ended.append(session_id)
