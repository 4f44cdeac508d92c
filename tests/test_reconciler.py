import asyncio
from datetime import timedelta

from careline.models import BookingStatus
from careline.services.emergency_service import EXPIRED_REASON

from .conftest import PATIENT_ID, PROFESSIONAL_ID


def _at(clock, minutes):
    """Booking label for clock time + minutes (the test date is a UTC Monday)."""
    instant = clock() + timedelta(minutes=minutes)
    return instant.strftime("%H:%M")


async def test_promotes_booking_inside_ready_buffer(reconciler, make_booking, clock, notifier, store):
    booking = make_booking(time=_at(clock, 20))

    clock.advance(minutes=3)
    summary = await reconciler.run_once()
    assert summary["promoted"] == 0
    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED

    clock.advance(minutes=3)
    summary = await reconciler.run_once()
    assert summary["promoted"] == 1

    promoted = store.bookings[booking.id]
    assert promoted.status == BookingStatus.READY
    assert promoted.can_start_call is True
    assert "Your consultation starts soon" in notifier.titles_for(PATIENT_ID)


async def test_started_bookings_are_not_promoted(reconciler, make_booking, clock, store):
    booking = make_booking(time=_at(clock, 0))

    await reconciler.run_once()

    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED


async def test_expires_unanswered_emergency(reconciler, service, clock, store, notifier):
    booking = await service.create_emergency(PROFESSIONAL_ID, PATIENT_ID)

    clock.advance(minutes=9)
    assert (await reconciler.run_once())["expired"] == 0

    clock.advance(minutes=2)
    summary = await reconciler.run_once()

    expired = store.bookings[booking.id]
    assert summary["expired"] == 1
    assert expired.status == BookingStatus.REJECTED
    assert expired.cancellation_reason == EXPIRED_REASON
    assert "Emergency request expired" in notifier.titles_for(PATIENT_ID)


async def test_reminder_sent_exactly_once(reconciler, make_booking, clock, notifier, store):
    booking = make_booking(time=_at(clock, 30))

    clock.advance(minutes=12)
    first = await reconciler.run_once()
    clock.advance(minutes=1)
    second = await reconciler.run_once()

    assert first["reminded"] == 1
    assert second["reminded"] == 0
    assert store.bookings[booking.id].reminder_sent is True
    assert notifier.titles_for(PATIENT_ID).count("Consultation reminder") == 1
    assert notifier.titles_for(PROFESSIONAL_ID).count("Consultation reminder") == 1


async def test_concurrent_runs_remind_once(reconciler, make_booking, clock, notifier):
    make_booking(time=_at(clock, 18))

    results = await asyncio.gather(reconciler.run_once(), reconciler.run_once())

    assert sum(r["reminded"] for r in results) <= 1
    assert notifier.titles_for(PATIENT_ID).count("Consultation reminder") == 1


async def test_failure_on_one_booking_does_not_stop_sweep(reconciler, service, make_booking, clock, store, monkeypatch):
    first = make_booking(time=_at(clock, 5), patient_id="pat-2")
    second = make_booking(time=_at(clock, 10), patient_id="pat-3")
    original = service.promote_to_ready

    async def flaky(booking):
        if booking.id == first.id:
            raise RuntimeError("store timeout")
        return await original(booking)

    monkeypatch.setattr(service, "promote_to_ready", flaky)

    summary = await reconciler.run_once()

    assert summary["promoted"] == 1
    assert summary["failed"] >= 1
    assert store.bookings[second.id].status == BookingStatus.READY


async def test_failing_sweep_does_not_stop_others(reconciler, service, clock, store, monkeypatch):
    booking = await service.create_emergency(PROFESSIONAL_ID, PATIENT_ID)
    clock.advance(minutes=11)

    async def broken(now):
        raise RuntimeError("index missing")

    monkeypatch.setattr(reconciler, "promote_ready", broken)

    summary = await reconciler.run_once()

    assert summary["expired"] == 1
    assert summary["failed"] == 1
    assert store.bookings[booking.id].status == BookingStatus.REJECTED


async def test_start_and_stop(reconciler, make_booking, clock, store):
    booking = make_booking(time=_at(clock, 10))

    reconciler.start()
    assert reconciler.running
    for _ in range(100):
        if store.bookings[booking.id].status == BookingStatus.READY:
            break
        await asyncio.sleep(0.01)
    await reconciler.stop()

    assert not reconciler.running
    assert store.bookings[booking.id].status == BookingStatus.READY
