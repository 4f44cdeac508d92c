"""
Main entry point for the Careline scheduler.
Wires the booking engine to its collaborators and starts the HTTP API
server together with the reconciliation loop.
"""

import logging

from aiohttp import web
from dotenv import load_dotenv

from config.settings import Settings, get_settings
from careline.api.routes import create_app
from careline.models import ProfessionalType
from careline.services import (
    BookingService,
    CallSessionBridge,
    CapacityAllocator,
    ChangeFeed,
    EscrowCoordinator,
    NotificationService,
    QueuePositionManager,
    ReconciliationScheduler,
    SlotGenerator,
    SupabaseService,
    WalletService,
)
from careline.services.providers import LiveKitProvider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Load environment variables (override=True ensures .env values take precedence)
load_dotenv(override=True)


class SchedulerWorker:
    """Holds the service graph for one process."""

    def __init__(self, settings: Settings):
        """Initialize the worker with services."""
        self.settings = settings

        # Initialize collaborators
        self.store = SupabaseService(
            url=settings.supabase_url,
            key=settings.supabase_service_role_key,
        )
        self.wallet = WalletService(settings.wallet_api_url, settings.wallet_api_key)
        self.notifier = NotificationService(settings.push_api_url, settings.push_api_key)
        self.video = LiveKitProvider(
            url=settings.livekit_url,
            api_key=settings.livekit_api_key,
            api_secret=settings.livekit_api_secret,
        )

        # Booking engine
        self.capacity = CapacityAllocator(
            self.store,
            default_daily_capacity=settings.default_daily_capacity,
            type_capacities={ProfessionalType.PHARMACIST: settings.pharmacist_daily_capacity},
        )
        self.bookings = BookingService(
            store=self.store,
            slot_generator=SlotGenerator(self.store, self.capacity, timezone=settings.timezone),
            capacity=self.capacity,
            queue=QueuePositionManager(self.store),
            escrow=EscrowCoordinator(self.wallet),
            bridge=CallSessionBridge(
                self.video,
                max_attempts=settings.join_max_attempts,
                retry_delay_seconds=settings.join_retry_delay_seconds,
            ),
            notifier=self.notifier,
            feed=ChangeFeed(),
            timezone=settings.timezone,
            emergency_fee=settings.emergency_fee,
            emergency_response_minutes=settings.emergency_response_minutes,
            session_duration_minutes=settings.session_duration_minutes,
            reminder_lead_minutes=settings.reminder_lead_minutes,
            call_propagation_seconds=settings.call_propagation_seconds,
        )
        self.reconciler = ReconciliationScheduler(
            self.bookings,
            interval_seconds=settings.reconcile_interval_seconds,
            ready_buffer_minutes=settings.ready_buffer_minutes,
            reminder_window_minutes=settings.reminder_window_minutes,
            batch_size=settings.sweep_batch_size,
        )

        logger.info("SchedulerWorker initialized with all services")

    def create_app(self) -> web.Application:
        app = create_app(booking_service=self.bookings, reconciler=self.reconciler)
        app.on_cleanup.append(self._close_clients)
        return app

    async def _close_clients(self, app: web.Application) -> None:
        await self.wallet.close()
        await self.notifier.close()
        await self.video.close()


def run_api_server():
    """Run the HTTP API server."""
    settings = get_settings()
    worker = SchedulerWorker(settings)
    logger.info(f"Starting API server on {settings.host}:{settings.port} ({settings.environment})")
    web.run_app(worker.create_app(), host=settings.host, port=settings.port)


def main():
    """Main entry point."""
    run_api_server()


if __name__ == "__main__":
    main()
