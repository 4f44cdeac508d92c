"""Call session bridge between bookings and the video provider."""

import asyncio
import logging

from ..exceptions import SessionJoinTimeout, VideoProviderError
from ..models import Booking, CallHandle
from .providers import BaseVideoProvider, CallParticipants, SessionNotFoundError

logger = logging.getLogger(__name__)


class CallSessionBridge:
    """
    Creates provider call sessions and joins them, tolerating the delay
    before a freshly created session becomes joinable.
    """

    def __init__(
        self,
        provider: BaseVideoProvider,
        max_attempts: int = 5,
        retry_delay_seconds: float = 1.0,
    ):
        """
        Initialize the bridge.

        Args:
            provider: Video provider
            max_attempts: Join attempts before giving up on a not-found session
            retry_delay_seconds: Wait between attempts
        """
        self.provider = provider
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds

    async def create_session(self, booking: Booking, max_duration_seconds: int) -> str:
        """Create a call session for the booking's two parties."""
        try:
            return await self.provider.create_call(
                CallParticipants(
                    booking_id=booking.id,
                    professional_id=booking.professional_id,
                    patient_id=booking.patient_id,
                    professional_name=booking.professional_name,
                    patient_name=booking.patient_name,
                ),
                max_duration_seconds,
            )
        except Exception as e:
            logger.error(f"Could not create call session for booking {booking.id}: {e}")
            raise VideoProviderError(f"Could not create call session: {e}") from e

    async def join_session(self, session_id: str, participant_id: str, participant_name: str = "") -> CallHandle:
        """
        Join a session, retrying while the provider reports it as not found.

        The wait between attempts is an asyncio.sleep, so cancelling the
        caller's task abandons the join immediately.

        Raises:
            SessionJoinTimeout: still not found after max_attempts
            VideoProviderError: any other provider failure
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                grant = await self.provider.join(session_id, participant_id, participant_name)
            except SessionNotFoundError:
                logger.info(f"Session {session_id} not joinable yet (attempt {attempt}/{self.max_attempts})")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay_seconds)
                continue
            except Exception as e:
                logger.error(f"Join failed for session {session_id}: {e}")
                raise VideoProviderError(f"Could not join call: {e}") from e

            return CallHandle(session_id=grant.session_id, token=grant.token, url=grant.url)

        raise SessionJoinTimeout(
            f"Session {session_id} was not joinable after {self.max_attempts} attempts"
        )

    async def end_session(self, session_id: str) -> None:
        """End a session; failures are logged only."""
        try:
            await self.provider.end_call(session_id)
        except Exception as e:
            logger.warning(f"Could not end call session {session_id}: {e}")
