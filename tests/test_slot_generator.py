from datetime import datetime, timezone

import pytest

from careline.models import AvailabilityWindow, Booking, BookingStatus, Professional, ProfessionalType
from careline.services.slot_generator import partition_window

from .conftest import BOOKING_DATE, PROFESSIONAL_ID


def test_partition_window_drops_trailing_remainder():
    window = AvailabilityWindow(day=0, start="09:00", end="10:45", slot_duration_minutes=30)
    assert partition_window(window) == ["09:00", "09:30", "10:00"]


def test_partition_window_end_is_exclusive():
    window = AvailabilityWindow(day=0, start="09:00", end="10:00", slot_duration_minutes=60)
    assert partition_window(window) == ["09:00"]


def test_window_rejects_end_before_start():
    with pytest.raises(ValueError):
        AvailabilityWindow(day=0, start="10:00", end="09:00")


async def test_slots_follow_template(slot_generator, professional):
    slots = await slot_generator.get_available_slots(professional, BOOKING_DATE)

    labels = [s.time for s in slots]
    assert labels[:3] == ["08:00", "08:30", "09:00"]
    assert all(s.duration_minutes == 30 for s in slots)
    # capped at the doctor's daily capacity
    assert len(slots) == 10
    assert set(labels) <= set(slot_generator.template_labels(professional, BOOKING_DATE))


async def test_no_window_means_no_slots(slot_generator, professional):
    # Tuesday has no entry, Wednesday's entry is disabled
    assert await slot_generator.get_available_slots(professional, "2026-03-03") == []
    assert await slot_generator.get_available_slots(professional, "2026-03-04") == []


async def test_booked_labels_are_excluded(slot_generator, professional, make_booking):
    make_booking(time="08:00", status=BookingStatus.CONFIRMED)
    make_booking(time="08:30", status=BookingStatus.CANCELLED, patient_id="pat-2")

    labels = [s.time for s in await slot_generator.get_available_slots(professional, BOOKING_DATE)]

    assert "08:00" not in labels
    # cancelled bookings free their label
    assert "08:30" in labels


async def test_past_labels_are_dropped(slot_generator, professional, clock):
    clock.now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    labels = [s.time for s in await slot_generator.get_available_slots(professional, BOOKING_DATE)]

    assert labels[0] == "09:30"


async def test_slot_count_never_exceeds_remaining_capacity(slot_generator, capacity, professional, make_booking):
    for i, label in enumerate(["08:00", "09:00", "10:00", "11:00"]):
        make_booking(time=label, patient_id=f"pat-{i + 10}")

    slots = await slot_generator.get_available_slots(professional, BOOKING_DATE)
    remaining = await capacity.remaining(professional, BOOKING_DATE)

    assert remaining == 6
    assert len(slots) == remaining


async def test_full_capacity_returns_no_slots(store, slot_generator, clock, make_booking):
    # 2025-06-01 is a Sunday
    clock.now = datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)
    sunday_pro = store.add_professional(Professional(
        id=PROFESSIONAL_ID,
        name="Dr. Ada Obi",
        availability=[AvailabilityWindow(day=6, start="08:00", end="20:00")],
    ))
    for i in range(10):
        make_booking(time=f"{8 + i:02d}:00", patient_id=f"pat-{i + 10}", date="2025-06-01")

    assert await slot_generator.get_available_slots(sunday_pro, "2025-06-01") == []


async def test_pharmacists_get_larger_cap(store, slot_generator):
    pharmacist = store.add_professional(Professional(
        id="pharm-1",
        professional_type=ProfessionalType.PHARMACIST,
        availability=[AvailabilityWindow(day=0, start="08:00", end="20:00", slot_duration_minutes=30)],
    ))

    slots = await slot_generator.get_available_slots(pharmacist, BOOKING_DATE)

    assert len(slots) == 20


async def test_max_daily_slots_overrides_type_cap(slot_generator, professional):
    limited = professional.model_copy(update={"max_daily_slots": 3})

    slots = await slot_generator.get_available_slots(limited, BOOKING_DATE)

    assert [s.time for s in slots] == ["08:00", "08:30", "09:00"]


async def test_is_bookable(slot_generator, professional, make_booking):
    make_booking(time="08:00")

    assert await slot_generator.is_bookable(professional, BOOKING_DATE, "08:30")
    assert not await slot_generator.is_bookable(professional, BOOKING_DATE, "08:00")
    assert not await slot_generator.is_bookable(professional, BOOKING_DATE, "08:15")


async def test_invalid_date_is_rejected(slot_generator, professional):
    with pytest.raises(ValueError):
        await slot_generator.get_available_slots(professional, "02/03/2026")


async def test_emergencies_do_not_consume_capacity(capacity, professional, store):
    store.put_booking(Booking(
        professional_id=PROFESSIONAL_ID,
        patient_id="pat-9",
        status=BookingStatus.EMERGENCY_PENDING,
        is_emergency=True,
    ))

    assert await capacity.remaining(professional, BOOKING_DATE) == 10
