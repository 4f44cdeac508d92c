"""
Push notification gateway client.
Delivery mechanics belong to the gateway; failures here never abort a
booking transition.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class Notification(BaseModel):
    """Payload sent to a user's devices."""
    title: str
    body: str
    data: dict = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL


class NotificationService:
    """HTTP client for the push gateway."""

    def __init__(self, base_url: str, api_key: str, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize push gateway client.

        Args:
            base_url: Gateway base URL
            api_key: Gateway API key
            client: Pre-built client (tests pass one with a mock transport)
        """
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=10.0,
        )

    async def send_to_user(self, user_id: str, notification: Notification) -> bool:
        """
        Push a notification to every device of a user.

        Returns:
            Success status
        """
        try:
            response = await self._client.post(
                f"/users/{user_id}/notifications",
                json=notification.model_dump(mode="json"),
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to notify {user_id}: {e}")
            return False

    async def schedule_local(self, user_id: str, notification: Notification, fire_at: datetime) -> bool:
        """
        Schedule a notification to fire on the user's devices at an instant.

        Returns:
            Success status
        """
        try:
            response = await self._client.post(
                f"/users/{user_id}/scheduled-notifications",
                json={
                    **notification.model_dump(mode="json"),
                    "fire_at": fire_at.isoformat(),
                },
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to schedule notification for {user_id}: {e}")
            return False

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()
