"""Booking lifecycle engine: the state machine behind every booking command."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from ..exceptions import (
    BookingNotFound,
    CallNotReady,
    DuplicateActiveBooking,
    IllegalTransition,
    ProfessionalNotFound,
    SlotUnavailable,
    Unauthorized,
)
from ..models import (
    ACTIVE_STATUSES,
    AvailabilityWindow,
    Booking,
    BookingStatus,
    CallHandle,
    ConsultationMedium,
    PaymentStatus,
    Professional,
    ProfessionalStats,
    TimeSlot,
)
from ..models.booking import QUEUED_STATUSES, check_transition
from ..utils.helpers import format_time_label, scheduled_instant, utc_now
from ..utils.keyed_lock import KeyedLock
from .call_bridge import CallSessionBridge
from .capacity import CapacityAllocator
from .change_feed import ChangeFeed, Subscription
from .emergency_service import EXPIRED_REASON, EmergencyService
from .escrow import EscrowCoordinator
from .notification_service import Notification, NotificationPriority, NotificationService
from .queue_manager import QueuePositionManager
from .slot_generator import SlotGenerator
from .store import BookingQuery, BookingStore

logger = logging.getLogger(__name__)


class BookingService:
    """
    Drives bookings through the scheduled and emergency paths.

    Every status change goes through _transition, which checks the
    transition table and writes with a compare-and-set on the status that
    was read, so a concurrent command or sweep cannot be overwritten.
    Commands on one booking are serialized by a per-booking lock.
    """

    def __init__(
        self,
        store: BookingStore,
        slot_generator: SlotGenerator,
        capacity: CapacityAllocator,
        queue: QueuePositionManager,
        escrow: EscrowCoordinator,
        bridge: CallSessionBridge,
        notifier: NotificationService,
        feed: Optional[ChangeFeed] = None,
        timezone: str = "UTC",
        clock: Optional[Callable[[], datetime]] = None,
        emergency_fee: int = 10000,
        emergency_response_minutes: int = 10,
        session_duration_minutes: int = 30,
        reminder_lead_minutes: int = 15,
        call_propagation_seconds: float = 2.0,
    ):
        """
        Initialize the booking service.

        Args:
            store: Booking/professional document store
            slot_generator: Availability calculator
            capacity: Daily capacity policy
            queue: Queue position manager
            escrow: Escrow coordinator over the wallet
            bridge: Call session bridge over the video provider
            notifier: Push notification client
            feed: Change feed for live subscriptions
            timezone: Timezone booking labels are expressed in
            clock: Returns the current UTC time (injectable for tests)
            emergency_fee: Fixed fee of an emergency consultation
            emergency_response_minutes: How long a professional has to accept an emergency
            session_duration_minutes: Lifetime of a call session
            reminder_lead_minutes: How long before start the local reminder fires
            call_propagation_seconds: Wait before a new call session is announced as joinable
        """
        self.store = store
        self.slots = slot_generator
        self.capacity = capacity
        self.queue = queue
        self.escrow = escrow
        self.bridge = bridge
        self.notifier = notifier
        self.feed = feed or ChangeFeed()
        self.timezone = timezone
        self.clock = clock or utc_now
        self.session_duration = timedelta(minutes=session_duration_minutes)
        self.reminder_lead = timedelta(minutes=reminder_lead_minutes)
        self.call_propagation_seconds = call_propagation_seconds

        self.emergency = EmergencyService(
            store,
            escrow,
            clock=self.clock,
            emergency_fee=emergency_fee,
            response_minutes=emergency_response_minutes,
        )

        self._locks = KeyedLock()
        self._background: Set[asyncio.Task] = set()
        self._activations: Dict[str, asyncio.Task] = {}

    # ==================== Scheduled path ====================

    async def create_booking(
        self,
        professional_id: str,
        patient_id: str,
        date: str,
        time: str,
        medium: ConsultationMedium = ConsultationMedium.VIDEO,
        reason: Optional[str] = None,
        fee: Optional[int] = None,
        patient_name: str = "",
    ) -> Booking:
        """
        Request a scheduled consultation.

        Raises:
            ProfessionalNotFound
            DuplicateActiveBooking: patient already has an active booking with the professional
            SlotUnavailable: label not in live availability, or taken at write time
        """
        professional = await self.get_professional(professional_id)

        existing = await self.store.find_bookings(BookingQuery(
            professional_id=professional_id,
            patient_id=patient_id,
            statuses=ACTIVE_STATUSES,
            limit=1,
        ))
        if existing:
            raise DuplicateActiveBooking(
                f"Patient already has booking {existing[0].id} with this professional"
            )

        if not await self.slots.is_bookable(professional, date, time):
            raise SlotUnavailable(f"{date} at {time} is not available")

        now = self.clock()
        booking = Booking(
            professional_id=professional.id,
            professional_name=professional.name,
            patient_id=patient_id,
            patient_name=patient_name,
            date=date,
            time=time,
            scheduled_at=scheduled_instant(date, time, self.timezone),
            medium=medium,
            reason=reason,
            status=BookingStatus.PENDING_CONFIRMATION,
            fee=professional.consultation_fee if fee is None else fee,
            created_at=now,
        )

        # The store re-validates label, capacity and duplicates atomically
        created = await self.store.reserve_slot(booking, self.capacity.daily_cap(professional))
        logger.info(f"Booking {created.id} requested for {professional_id} on {date} at {time}")
        self._publish(created)

        await self._notify(
            professional_id,
            "New booking request",
            f"{patient_name or 'A patient'} requested {date} at {format_time_label(time)}",
            created,
        )
        return created

    # ==================== Emergency path ====================

    async def create_emergency(
        self,
        professional_id: str,
        patient_id: str,
        reason: Optional[str] = None,
        patient_name: str = "",
    ) -> Booking:
        """
        Request an emergency consultation.

        Raises:
            ProfessionalNotFound
            EmergencyNotAccepted: professional offline or not taking emergencies
            InsufficientBalance: patient cannot cover the emergency fee
            DuplicateActiveEmergency: patient already has an open emergency
        """
        professional = await self.get_professional(professional_id)
        booking = await self.emergency.admit(professional, patient_id, reason, patient_name)

        created = await self.store.insert_emergency(booking)
        logger.info(f"Emergency {created.id} requested from {professional_id}, deadline {created.emergency_deadline}")
        self._publish(created)

        await self._notify(
            professional_id,
            "Emergency consultation request",
            f"{patient_name or 'A patient'} needs help now: {reason or 'no details given'}",
            created,
            NotificationPriority.HIGH,
        )
        return created

    async def expire_emergency(self, booking: Booking) -> Optional[Booking]:
        """
        Reject an unanswered emergency after its deadline.

        Unconfirmed emergencies are never held, so there is nothing to refund.

        Returns:
            The rejected booking, or None if it was answered in the meantime
        """
        async with self._locks.hold(booking.id):
            expired = await self._transition(
                booking,
                BookingStatus.REJECTED,
                {"cancellation_reason": EXPIRED_REASON},
                expected=BookingStatus.EMERGENCY_PENDING,
                strict=False,
            )
        if expired is None:
            return None

        logger.info(f"Emergency {booking.id} expired unanswered")
        await self._notify(
            booking.patient_id,
            "Emergency request expired",
            f"{booking.professional_name or 'The professional'} did not respond in time. You were not charged.",
            expired,
        )
        return expired

    # ==================== Confirm / reject / cancel ====================

    async def confirm(self, booking_id: str, professional_id: str) -> Booking:
        """
        Accept a pending booking on either path.

        Raises:
            Unauthorized: caller is not the booking's professional
            EmergencyExpired: emergency accepted after its deadline
            InsufficientBalance: patient cannot cover the fee
            EscrowFailed: hold could not be placed; booking unchanged
        """
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._require_professional(booking, professional_id)

            target = (
                BookingStatus.EMERGENCY_CONFIRMED if booking.is_emergency
                else BookingStatus.CONFIRMED
            )
            check_transition(booking.status, target)
            if booking.is_emergency:
                self.emergency.ensure_open(booking)

            if booking.payment_status == PaymentStatus.PENDING:
                await self.escrow.ensure_balance(booking.patient_id, booking.fee)
            payment_status = await self.escrow.hold(booking)
            try:
                confirmed = await self._transition(booking, target, {"payment_status": payment_status})
            except Exception:
                if booking.payment_status != payment_status:
                    await self.escrow.compensate_hold(booking)
                raise

            if not booking.is_emergency:
                confirmed = await self._resequence(confirmed)

        if booking.is_emergency:
            await self._notify(
                booking.patient_id,
                "Emergency consultation accepted",
                f"{booking.professional_name or 'Your professional'} is about to call you",
                confirmed,
                NotificationPriority.HIGH,
            )
        else:
            await self._schedule_reminder(confirmed)
            await self._notify(
                booking.patient_id,
                "Booking confirmed",
                f"{confirmed.to_summary()}. You are number {confirmed.queue_position} in the queue.",
                confirmed,
            )
        return confirmed

    async def reject(self, booking_id: str, professional_id: str, reason: Optional[str] = None) -> Booking:
        """Decline a pending booking, refunding anything already held."""
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._require_professional(booking, professional_id)
            check_transition(booking.status, BookingStatus.REJECTED)

            rejected = await self._refund_and_transition(booking, BookingStatus.REJECTED, {
                "cancellation_reason": reason,
                "can_start_call": False,
            })

        await self._notify(
            booking.patient_id,
            "Booking declined",
            reason or f"{booking.professional_name or 'The professional'} could not take this booking",
            rejected,
        )
        return rejected

    async def cancel(self, booking_id: str, actor_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a booking that has not started, by either party."""
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._require_party(booking, actor_id)
            check_transition(booking.status, BookingStatus.CANCELLED)

            cancelled = await self._refund_and_transition(booking, BookingStatus.CANCELLED, {
                "cancellation_reason": reason,
                "queue_position": 0,
                "can_start_call": False,
            })
            if booking.status in QUEUED_STATUSES:
                await self._resequence(cancelled)

        await self._notify(
            booking.counterpart_of(actor_id),
            "Booking cancelled",
            reason or f"{booking.to_summary()} was cancelled",
            cancelled,
        )
        return cancelled

    # ==================== Call session ====================

    async def initiate_call(self, booking_id: str, professional_id: str) -> Booking:
        """
        Start (or restart) the call for a confirmed booking.

        The patient cannot join until the provider has had time to propagate
        the new session; a background task flips can_start_call afterwards.
        """
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._require_professional(booking, professional_id)
            check_transition(booking.status, BookingStatus.IN_PROGRESS)

            # A restart must not be made joinable by the previous session's timer
            previous = self._activations.pop(booking_id, None)
            if previous is not None:
                previous.cancel()
            if booking.status == BookingStatus.IN_PROGRESS and booking.call_session_id:
                await self.bridge.end_session(booking.call_session_id)

            session_id = await self.bridge.create_session(
                booking, int(self.session_duration.total_seconds())
            )
            now = self.clock()
            started = await self._transition(booking, BookingStatus.IN_PROGRESS, {
                "call_session_id": session_id,
                "call_started_at": now,
                "session_expires_at": now + self.session_duration,
                "can_start_call": False,
            })

            activation = self._spawn(self._activate_call(booking_id, session_id))
            self._activations[booking_id] = activation
            activation.add_done_callback(lambda task: self._forget_activation(booking_id, task))
        return started

    def _forget_activation(self, booking_id: str, task: asyncio.Task) -> None:
        if self._activations.get(booking_id) is task:
            del self._activations[booking_id]

    async def _activate_call(self, booking_id: str, session_id: str) -> None:
        """Mark the session joinable once the provider has propagated it."""
        try:
            await asyncio.sleep(self.call_propagation_seconds)
            async with self._locks.hold(booking_id):
                updated = await self.store.compare_and_set(
                    booking_id,
                    {BookingStatus.IN_PROGRESS},
                    {"can_start_call": True},
                    where={"call_session_id": session_id},
                )
            if updated is None:
                logger.info(f"Call session {session_id} superseded before activation for booking {booking_id}")
                return

            self._publish(updated)
            await self._notify(
                updated.patient_id,
                "Incoming video call",
                f"{updated.professional_name or 'Your professional'} is calling",
                updated,
                NotificationPriority.HIGH,
                extra={"call_session_id": session_id, "is_emergency": updated.is_emergency},
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Failed to activate call session {session_id} for booking {booking_id}")

    async def join_call(self, booking_id: str, patient_id: str) -> CallHandle:
        """
        Join the booking's call as the patient.

        Raises:
            Unauthorized: caller is not the booking's patient
            CallNotReady: call not started, not yet joinable, or expired
            SessionJoinTimeout: provider never exposed the session
        """
        booking = await self.get_booking(booking_id)
        if booking.patient_id != patient_id:
            raise Unauthorized("Only the booking's patient can join this call")

        if (
            booking.status != BookingStatus.IN_PROGRESS
            or not booking.can_start_call
            or not booking.call_session_id
        ):
            raise CallNotReady("The professional has not started the call yet")
        if booking.session_expires_at and self.clock() > booking.session_expires_at:
            raise CallNotReady("The call session has expired")

        return await self.bridge.join_session(
            booking.call_session_id, patient_id, booking.patient_name
        )

    async def complete(self, booking_id: str, actor_id: Optional[str] = None) -> Booking:
        """
        Finish an in-progress consultation and pay the professional.

        Raises:
            IllegalTransition: booking is not in progress
            EscrowFailed: release failed; booking stays in progress
        """
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            if actor_id is not None:
                self._require_party(booking, actor_id)
            check_transition(booking.status, BookingStatus.COMPLETED)

            payment_status = await self.escrow.release(booking)
            try:
                completed = await self._transition(booking, BookingStatus.COMPLETED, {
                    "payment_status": payment_status,
                    "call_ended_at": self.clock(),
                    "can_start_call": False,
                    "queue_position": 0,
                })
            except Exception:
                logger.critical(
                    f"Payment released for booking {booking_id} but the booking update failed; "
                    "manual reconciliation needed"
                )
                raise

            try:
                await self.store.increment_completed(booking.professional_id)
            except Exception:
                logger.exception(f"Could not update completed count for {booking.professional_id}")

            if booking.call_session_id:
                await self.bridge.end_session(booking.call_session_id)
            if not booking.is_emergency:
                await self._resequence(completed)

        await self._notify(
            booking.patient_id,
            "Consultation completed",
            f"How was your session with {booking.professional_name or 'your professional'}? Leave a rating.",
            completed,
        )
        return completed

    async def reject_during_call(self, booking_id: str, actor_id: str, reason: Optional[str] = None) -> Booking:
        """
        Abort an in-progress consultation, by either party.

        Held funds go back to the patient.
        """
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            self._require_party(booking, actor_id)
            check_transition(booking.status, BookingStatus.REJECTED_DURING_CALL)

            aborted = await self._refund_and_transition(booking, BookingStatus.REJECTED_DURING_CALL, {
                "call_session_id": None,
                "call_ended_at": self.clock(),
                "can_start_call": False,
                "queue_position": 0,
                "cancellation_reason": reason,
            })

            if booking.call_session_id:
                await self.bridge.end_session(booking.call_session_id)
            if not booking.is_emergency:
                await self._resequence(aborted)

        await self._notify(
            booking.counterpart_of(actor_id),
            "Call ended",
            reason or "The consultation was ended before completion. Any payment was refunded.",
            aborted,
        )
        return aborted

    async def mark_rated(self, booking_id: str, patient_id: str) -> Booking:
        """Record that the patient rated a completed consultation."""
        async with self._locks.hold(booking_id):
            booking = await self.get_booking(booking_id)
            if booking.patient_id != patient_id:
                raise Unauthorized("Only the booking's patient can rate it")
            if booking.status != BookingStatus.COMPLETED:
                raise IllegalTransition(booking.status.value, "rated")
            if booking.rated:
                return booking

            updated = await self.store.compare_and_set(
                booking_id, {BookingStatus.COMPLETED}, {"rated": True}, where={"rated": False}
            )
            if updated is None:
                return await self.get_booking(booking_id)
            self._publish(updated)
            return updated

    # ==================== System transitions ====================

    async def promote_to_ready(self, booking: Booking) -> Optional[Booking]:
        """
        Open the call window for a confirmed booking that starts soon.

        Returns:
            The promoted booking, or None if another actor moved it first
        """
        async with self._locks.hold(booking.id):
            ready = await self._transition(
                booking,
                BookingStatus.READY,
                {"can_start_call": True},
                expected=BookingStatus.CONFIRMED,
                strict=False,
            )
        if ready is not None:
            await self._notify(
                ready.patient_id,
                "Your consultation starts soon",
                f"{ready.to_summary()}. Be ready to join.",
                ready,
            )
        return ready

    async def send_reminder(self, booking: Booking) -> Optional[Booking]:
        """
        Send the pre-consultation reminder exactly once.

        The flag is claimed with a compare-and-set before notifying, so two
        concurrent sweeps cannot both send.
        """
        async with self._locks.hold(booking.id):
            claimed = await self.store.compare_and_set(
                booking.id,
                {BookingStatus.CONFIRMED},
                {"reminder_sent": True},
                where={"reminder_sent": False},
            )
        if claimed is None:
            return None

        self._publish(claimed)
        for user_id in (claimed.patient_id, claimed.professional_id):
            await self._notify(user_id, "Consultation reminder", claimed.to_summary(), claimed)
        return claimed

    # ==================== Queries ====================

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    async def watch_booking(self, booking_id: str) -> Subscription:
        """Subscribe to snapshots of one booking, starting with its current state."""
        booking = await self.get_booking(booking_id)
        return self.feed.subscribe(("booking", booking_id), initial=booking)

    async def get_queue(self, professional_id: str, date: str) -> List[Booking]:
        return await self.queue.get_queue(professional_id, date)

    async def watch_queue(self, professional_id: str, date: str) -> Subscription:
        """Subscribe to a professional's queue for a date."""
        current = await self.get_queue(professional_id, date)
        return self.feed.subscribe(("queue", professional_id, date), initial=current)

    async def get_available_slots(self, professional_id: str, date: str) -> List[TimeSlot]:
        professional = await self.get_professional(professional_id)
        return await self.slots.get_available_slots(professional, date)

    async def get_patient_bookings(self, patient_id: str) -> List[Booking]:
        return await self.store.find_bookings(BookingQuery(patient_id=patient_id))

    async def get_professional_bookings(self, professional_id: str) -> List[Booking]:
        return await self.store.find_bookings(BookingQuery(professional_id=professional_id))

    async def get_professional_stats(self, professional_id: str) -> ProfessionalStats:
        """Totals for the professional's dashboard."""
        bookings = await self.get_professional_bookings(professional_id)
        completed = [b for b in bookings if b.status == BookingStatus.COMPLETED]
        return ProfessionalStats(
            total_bookings=len(bookings),
            completed_consultations=len(completed),
            cancelled_consultations=sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
            active_bookings=sum(1 for b in bookings if b.is_active),
            total_earnings=sum(b.fee for b in completed),
        )

    # ==================== Professionals ====================

    async def get_professional(self, professional_id: str) -> Professional:
        professional = await self.store.get_professional(professional_id)
        if professional is None:
            raise ProfessionalNotFound(f"Professional {professional_id} not found")
        return professional

    async def set_online(self, professional_id: str, is_online: bool) -> Professional:
        """Toggle whether a professional takes emergency calls right now."""
        updated = await self.store.update_professional(professional_id, {"is_online": is_online})
        if updated is None:
            raise ProfessionalNotFound(f"Professional {professional_id} not found")
        logger.info(f"Professional {professional_id} is now {'online' if is_online else 'offline'}")
        return updated

    async def update_availability(
        self,
        professional_id: str,
        availability: List[AvailabilityWindow],
    ) -> Professional:
        """Replace a professional's weekly availability template."""
        updated = await self.store.update_professional(
            professional_id,
            {"availability": [window.model_dump() for window in availability]},
        )
        if updated is None:
            raise ProfessionalNotFound(f"Professional {professional_id} not found")
        return updated

    # ==================== Lifecycle ====================

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending call activations to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending call activations."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)

    # ==================== Internals ====================

    async def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        updates: Dict[str, Any],
        expected: Optional[BookingStatus] = None,
        strict: bool = True,
    ) -> Optional[Booking]:
        """
        Move a booking to target with a compare-and-set on its observed status.

        With strict=False a lost race returns None instead of raising.
        """
        source = expected or booking.status
        check_transition(source, target)

        updated = await self.store.compare_and_set(
            booking.id, {source}, {**updates, "status": target}
        )
        if updated is None:
            if not strict:
                return None
            current = await self.store.get_booking(booking.id)
            raise IllegalTransition(
                current.status.value if current else "missing", target.value
            )

        logger.info(f"Booking {booking.id}: {source.value} -> {target.value}")
        self._publish(updated)
        return updated

    async def _refund_and_transition(
        self,
        booking: Booking,
        target: BookingStatus,
        updates: Dict[str, Any],
    ) -> Booking:
        """
        Refund held funds and move to target as one unit.

        If the write does not land, the refund is put back as a hold. If even
        that fails, the payment is recorded as refunded so a later Complete
        cannot release the same funds.
        """
        payment_status = await self.escrow.refund(booking)
        try:
            return await self._transition(booking, target, {**updates, "payment_status": payment_status})
        except Exception:
            if payment_status != booking.payment_status:
                if not await self.escrow.compensate_refund(booking):
                    await self._record_lost_refund(booking)
            raise

    async def _record_lost_refund(self, booking: Booking) -> None:
        try:
            marked = await self.store.compare_and_set(
                booking.id,
                ACTIVE_STATUSES,
                {"payment_status": PaymentStatus.REFUNDED},
                where={"payment_status": PaymentStatus.HELD},
            )
        except Exception:
            logger.exception(f"Could not record refund for booking {booking.id}, manual reconciliation needed")
            return
        if marked is not None:
            logger.warning(f"Booking {booking.id} keeps status {marked.status.value} with its payment refunded")
            self._publish(marked)

    async def _resequence(self, booking: Booking) -> Booking:
        """Recompute the booking's date queue and return its fresh snapshot."""
        queue = await self.queue.resequence(booking.professional_id, booking.date)
        self.feed.publish(("queue", booking.professional_id, booking.date), queue)

        refreshed = booking
        for queued in queue:
            if queued.id == booking.id:
                refreshed = queued
            self._publish(queued)
        return refreshed

    def _publish(self, booking: Booking) -> None:
        self.feed.publish(("booking", booking.id), booking)

    async def _schedule_reminder(self, booking: Booking) -> None:
        if booking.scheduled_at is None:
            return
        fire_at = booking.scheduled_at - self.reminder_lead
        if fire_at <= self.clock():
            return
        notification = Notification(
            title="Consultation reminder",
            body=f"{booking.to_summary()} starts in {int(self.reminder_lead.total_seconds() // 60)} minutes",
            data={"booking_id": booking.id},
        )
        try:
            await self.notifier.schedule_local(booking.patient_id, notification, fire_at)
        except Exception as e:
            logger.warning(f"Could not schedule reminder for booking {booking.id}: {e}")

    async def _notify(
        self,
        user_id: str,
        title: str,
        body: str,
        booking: Booking,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        extra: Optional[dict] = None,
    ) -> None:
        """Best-effort push; a failed notification never fails the command."""
        notification = Notification(
            title=title,
            body=body,
            data={"booking_id": booking.id, "status": booking.status.value, **(extra or {})},
            priority=priority,
        )
        try:
            await self.notifier.send_to_user(user_id, notification)
        except Exception as e:
            logger.warning(f"Notification to {user_id} failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    def _require_professional(booking: Booking, professional_id: str) -> None:
        if booking.professional_id != professional_id:
            raise Unauthorized("Only the booking's professional can do this")

    @staticmethod
    def _require_party(booking: Booking, actor_id: str) -> None:
        if not booking.involves(actor_id):
            raise Unauthorized("Only the booking's patient or professional can do this")
