"""
Configuration settings for the Careline scheduler.
Loads from environment variables with validation.
"""

from functools import lru_cache
from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Literal["development", "production"] = "development"
    debug: bool = False
    timezone: str = Field(
        default="Africa/Lagos",
        description="Timezone that booking date/time labels are expressed in"
    )

    # Supabase Configuration (document store)
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_service_role_key: str = Field(..., description="Supabase service role key")

    # LiveKit Configuration (video provider)
    livekit_url: str = Field(..., description="LiveKit server URL")
    livekit_api_key: str = Field(..., description="LiveKit API key")
    livekit_api_secret: str = Field(..., description="LiveKit API secret")

    # Wallet ledger service
    wallet_api_url: str = Field(..., description="Wallet service base URL")
    wallet_api_key: str = Field(..., description="Wallet service API key")

    # Push notification gateway
    push_api_url: str = Field(..., description="Push gateway base URL")
    push_api_key: str = Field(..., description="Push gateway API key")

    # Booking policy
    emergency_fee: int = 10000
    emergency_response_minutes: int = 10
    session_duration_minutes: int = 30
    reminder_lead_minutes: int = 15

    # Capacity policy
    default_daily_capacity: int = 10
    pharmacist_daily_capacity: int = 20

    # Reconciliation scheduler
    reconcile_interval_seconds: float = 60.0
    ready_buffer_minutes: int = 15
    reminder_window_minutes: int = 20
    sweep_batch_size: int = 200

    # Call session bridge
    join_max_attempts: int = 5
    join_retry_delay_seconds: float = 1.0
    call_propagation_seconds: float = 2.0

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8082

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
