"""LiveKit video provider implementation."""

import json
import logging
import uuid
from datetime import timedelta
from typing import Optional

from livekit import api

from .base_provider import (
    BaseVideoProvider,
    CallParticipants,
    JoinGrant,
    ProviderType,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


class LiveKitProvider(BaseVideoProvider):
    """
    Runs each consultation in its own LiveKit room.

    Rooms created through the server API take a moment to become visible to
    every node, so a join straight after creation can miss the room; that
    case surfaces as SessionNotFoundError.
    """

    provider_type = ProviderType.LIVEKIT

    def __init__(self, url: str, api_key: str, api_secret: str):
        """
        Initialize LiveKit provider.

        Args:
            url: LiveKit server URL
            api_key: LiveKit API key
            api_secret: LiveKit API secret
        """
        self.url = url
        self.api_key = api_key
        self.api_secret = api_secret
        self._api: Optional[api.LiveKitAPI] = None

    @property
    def client(self) -> api.LiveKitAPI:
        # Created lazily so construction does not need a running loop
        if self._api is None:
            self._api = api.LiveKitAPI(self.url, self.api_key, self.api_secret)
        return self._api

    async def create_call(self, participants: CallParticipants, max_duration_seconds: int) -> str:
        """Create the consultation room and return its name."""
        # One room per attempt; a restarted call gets a fresh name
        room_name = f"consultation_{participants.booking_id}_{uuid.uuid4().hex[:8]}"
        metadata = json.dumps({
            "booking_id": participants.booking_id,
            "professional_id": participants.professional_id,
            "patient_id": participants.patient_id,
            "professional_name": participants.professional_name,
            "patient_name": participants.patient_name,
        })
        try:
            room = await self.client.room.create_room(api.CreateRoomRequest(
                name=room_name,
                empty_timeout=max_duration_seconds,
                max_participants=2,
                metadata=metadata,
            ))
        except api.TwirpError as e:
            logger.error(f"Failed to create LiveKit room {room_name}: {e}")
            raise

        logger.info(f"Created LiveKit room {room.name} for booking {participants.booking_id}")
        return room.name

    async def join(self, session_id: str, participant_id: str, participant_name: str = "") -> JoinGrant:
        """Confirm the room exists and mint an access token for it."""
        try:
            response = await self.client.room.list_rooms(api.ListRoomsRequest(names=[session_id]))
        except api.TwirpError as e:
            if e.code == "not_found":
                raise SessionNotFoundError(session_id) from e
            raise

        if not response.rooms:
            raise SessionNotFoundError(session_id)

        token = (
            api.AccessToken(self.api_key, self.api_secret)
            .with_identity(participant_id)
            .with_name(participant_name or participant_id)
            .with_ttl(timedelta(hours=1))
            .with_grants(api.VideoGrants(
                room_join=True,
                room=session_id,
                can_publish=True,
                can_subscribe=True,
                can_publish_data=True,
            ))
        )
        return JoinGrant(session_id=session_id, token=token.to_jwt(), url=self.url)

    async def end_call(self, session_id: str) -> None:
        """Delete the room, disconnecting anyone still in it."""
        try:
            await self.client.room.delete_room(api.DeleteRoomRequest(room=session_id))
            logger.info(f"Ended LiveKit room {session_id}")
        except api.TwirpError as e:
            if e.code != "not_found":
                raise

    async def close(self):
        """Close the API client."""
        if self._api is not None:
            await self._api.aclose()
            self._api = None
