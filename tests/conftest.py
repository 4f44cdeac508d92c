"""Shared fixtures: a booking engine wired to in-memory collaborators."""

from datetime import datetime, timezone

import pytest

from careline.models import AvailabilityWindow, Booking, BookingStatus, PaymentStatus, Professional, ProfessionalType
from careline.services import (
    BookingService,
    CallSessionBridge,
    CapacityAllocator,
    ChangeFeed,
    EscrowCoordinator,
    QueuePositionManager,
    ReconciliationScheduler,
    SlotGenerator,
)
from careline.utils.helpers import scheduled_instant

from .fakes import FakeClock, FakeNotifier, FakeVideoProvider, FakeWallet, InMemoryStore

# Monday
BOOKING_DATE = "2026-03-02"
PROFESSIONAL_ID = "pro-1"
PATIENT_ID = "pat-1"


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc))


@pytest.fixture
def professional():
    return Professional(
        id=PROFESSIONAL_ID,
        name="Dr. Ada Obi",
        professional_type=ProfessionalType.DOCTOR,
        availability=[
            AvailabilityWindow(day=0, start="08:00", end="17:00", slot_duration_minutes=30),
            AvailabilityWindow(day=2, start="09:00", end="12:00", slot_duration_minutes=60, enabled=False),
        ],
        is_online=True,
        consultation_fee=5000,
    )


@pytest.fixture
def store(clock, professional):
    store = InMemoryStore(clock)
    store.add_professional(professional)
    return store


@pytest.fixture
def wallet():
    return FakeWallet({PATIENT_ID: 50000, "pat-2": 50000, "pat-3": 50000})


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def video():
    return FakeVideoProvider()


@pytest.fixture
def capacity(store):
    return CapacityAllocator(
        store,
        default_daily_capacity=10,
        type_capacities={ProfessionalType.PHARMACIST: 20},
    )


@pytest.fixture
def slot_generator(store, capacity, clock):
    return SlotGenerator(store, capacity, timezone="UTC", clock=clock)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
async def service(store, slot_generator, capacity, wallet, video, notifier, feed, clock):
    service = BookingService(
        store=store,
        slot_generator=slot_generator,
        capacity=capacity,
        queue=QueuePositionManager(store),
        escrow=EscrowCoordinator(wallet),
        bridge=CallSessionBridge(video, max_attempts=5, retry_delay_seconds=0),
        notifier=notifier,
        feed=feed,
        timezone="UTC",
        clock=clock,
        call_propagation_seconds=0,
    )
    yield service
    await service.close()


@pytest.fixture
def reconciler(service, clock):
    return ReconciliationScheduler(service, interval_seconds=0.01, clock=clock)


@pytest.fixture
def make_booking(store):
    """Seed a booking directly in the store."""

    def _make(time="10:00", status=BookingStatus.CONFIRMED, patient_id=PATIENT_ID, date=BOOKING_DATE, **fields):
        fields.setdefault("fee", 5000)
        fields.setdefault("payment_status", PaymentStatus.HELD if status != BookingStatus.PENDING_CONFIRMATION else PaymentStatus.PENDING)
        return store.put_booking(Booking(
            professional_id=PROFESSIONAL_ID,
            professional_name="Dr. Ada Obi",
            patient_id=patient_id,
            date=date,
            time=time,
            scheduled_at=scheduled_instant(date, time, "UTC"),
            status=status,
            **fields,
        ))

    return _make
