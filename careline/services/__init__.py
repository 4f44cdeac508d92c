"""Services package: booking engine and external integrations."""

from .booking_service import BookingService
from .call_bridge import CallSessionBridge
from .capacity import CapacityAllocator
from .change_feed import ChangeFeed, Subscription
from .emergency_service import EmergencyService
from .escrow import EscrowCoordinator
from .notification_service import Notification, NotificationPriority, NotificationService
from .queue_manager import QueuePositionManager
from .reconciler import ReconciliationScheduler
from .slot_generator import SlotGenerator
from .store import BookingQuery, BookingStore
from .supabase_service import SupabaseService
from .wallet_service import WalletService

__all__ = [
    "BookingService",
    "CallSessionBridge",
    "CapacityAllocator",
    "ChangeFeed",
    "Subscription",
    "EmergencyService",
    "EscrowCoordinator",
    "Notification",
    "NotificationPriority",
    "NotificationService",
    "QueuePositionManager",
    "ReconciliationScheduler",
    "SlotGenerator",
    "BookingQuery",
    "BookingStore",
    "SupabaseService",
    "WalletService",
]
