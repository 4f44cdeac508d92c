"""Video provider implementations."""

from .base_provider import (
    BaseVideoProvider,
    CallParticipants,
    JoinGrant,
    ProviderType,
    SessionNotFoundError,
)
from .livekit_provider import LiveKitProvider

__all__ = [
    "BaseVideoProvider",
    "CallParticipants",
    "JoinGrant",
    "ProviderType",
    "SessionNotFoundError",
    "LiveKitProvider",
]
