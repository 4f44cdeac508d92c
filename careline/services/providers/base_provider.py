"""Base video provider abstract class."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProviderType(Enum):
    """Supported video provider types."""
    LIVEKIT = "livekit"


class SessionNotFoundError(Exception):
    """The provider does not (yet) know the session; joins may be retried."""


@dataclass
class CallParticipants:
    """Who is allowed into a consultation call."""
    booking_id: str
    professional_id: str
    patient_id: str
    professional_name: str = ""
    patient_name: str = ""


@dataclass
class JoinGrant:
    """Standardized join result from any provider."""
    session_id: str
    token: str
    url: Optional[str] = None


class BaseVideoProvider(ABC):
    """Abstract base class for video-conferencing providers."""

    provider_type: ProviderType

    @abstractmethod
    async def create_call(self, participants: CallParticipants, max_duration_seconds: int) -> str:
        """
        Create a call session for a booking.

        Args:
            participants: Booking and participant identities
            max_duration_seconds: Upper bound on the session lifetime

        Returns:
            Provider session ID
        """

    @abstractmethod
    async def join(self, session_id: str, participant_id: str, participant_name: str = "") -> JoinGrant:
        """
        Join an existing call session.

        Raises:
            SessionNotFoundError: the session has not propagated yet
        """

    @abstractmethod
    async def end_call(self, session_id: str) -> None:
        """Tear down a call session."""
