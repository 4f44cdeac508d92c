"""Periodic reconciliation of time-driven booking transitions."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..models import Booking, BookingStatus
from .booking_service import BookingService
from .store import BookingQuery

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """
    Runs the time-driven sweeps on a fixed interval.

    Each sweep selects a bounded batch of due bookings and applies an
    idempotent transition to each, so overlapping runs (or several
    instances) at worst do a no-op compare-and-set. A failure on one booking
    is logged and does not stop the rest of the batch.
    """

    def __init__(
        self,
        bookings: BookingService,
        interval_seconds: float = 60.0,
        ready_buffer_minutes: int = 15,
        reminder_window_minutes: int = 20,
        batch_size: int = 200,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.bookings = bookings
        self.interval_seconds = interval_seconds
        self.ready_buffer = timedelta(minutes=ready_buffer_minutes)
        self.reminder_window = timedelta(minutes=reminder_window_minutes)
        self.batch_size = batch_size
        self.clock = clock or bookings.clock

        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Reconciler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current run to finish."""
        if not self.running:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("Reconciler stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                summary = await self.run_once()
                if any(summary.values()):
                    logger.info(f"Reconcile pass: {summary}")
            except Exception:
                logger.exception("Reconcile pass failed")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Dict[str, int]:
        """
        Run every sweep once against the current time.

        Returns:
            Counts of promoted, expired and reminded bookings, plus failures
        """
        now = self.clock()
        summary = {"promoted": 0, "expired": 0, "reminded": 0, "failed": 0}

        sweeps: List[Tuple[str, Callable[[datetime], Awaitable[Tuple[int, int]]]]] = [
            ("promoted", self.promote_ready),
            ("expired", self.expire_emergencies),
            ("reminded", self.send_reminders),
        ]
        for name, sweep in sweeps:
            try:
                done, failed = await sweep(now)
            except Exception:
                logger.exception(f"Sweep '{name}' failed")
                summary["failed"] += 1
                continue
            summary[name] += done
            summary["failed"] += failed

        return summary

    async def promote_ready(self, now: datetime) -> Tuple[int, int]:
        """Confirmed bookings starting within the ready buffer become ready."""
        due = await self.bookings.store.find_bookings(BookingQuery(
            statuses=frozenset({BookingStatus.CONFIRMED}),
            is_emergency=False,
            scheduled_after=now,
            scheduled_until=now + self.ready_buffer,
            order_by_schedule=True,
            limit=self.batch_size,
        ))
        return await self._apply(due, self.bookings.promote_to_ready, "promote")

    async def expire_emergencies(self, now: datetime) -> Tuple[int, int]:
        """Unanswered emergencies past their deadline are rejected."""
        due = await self.bookings.store.find_bookings(BookingQuery(
            statuses=frozenset({BookingStatus.EMERGENCY_PENDING}),
            is_emergency=True,
            deadline_before=now,
            limit=self.batch_size,
        ))
        return await self._apply(due, self.bookings.expire_emergency, "expire")

    async def send_reminders(self, now: datetime) -> Tuple[int, int]:
        """Confirmed bookings starting within the reminder window get one reminder."""
        due = await self.bookings.store.find_bookings(BookingQuery(
            statuses=frozenset({BookingStatus.CONFIRMED}),
            is_emergency=False,
            reminder_sent=False,
            scheduled_after=now,
            scheduled_until=now + self.reminder_window,
            order_by_schedule=True,
            limit=self.batch_size,
        ))
        return await self._apply(due, self.bookings.send_reminder, "remind")

    async def _apply(
        self,
        due: List[Booking],
        action: Callable[[Booking], Awaitable[Optional[Booking]]],
        label: str,
    ) -> Tuple[int, int]:
        done = failed = 0
        for booking in due:
            try:
                if await action(booking) is not None:
                    done += 1
            except Exception:
                failed += 1
                logger.exception(f"Failed to {label} booking {booking.id}")
        return done, failed
