"""
Notification Channels - best-effort delivery of match notifications

Channels:
    - LogChannel: writes the message to the log (default, no external calls)
    - WebhookChannel: JSON POST to a configured URL via httpx

A channel raises or returns False on failure; the dispatcher records the
failure and keeps the notification row, which stands for "should be
delivered" rather than "was delivered".
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from nurselink.config import get_settings
from nurselink.services.entities import Mission, Notification

logger = logging.getLogger(__name__)

NEW_MISSION_MATCH = "new_mission_match"


@dataclass(frozen=True)
class NotificationMessage:
    nurse_id: str
    mission_id: str
    type: str
    title: str
    body: str
    metadata: Dict[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "nurse_id": self.nurse_id,
            "mission_id": self.mission_id,
            "type": self.type,
            "title": self.title,
            "message": self.body,
            "metadata": self.metadata,
        }


def build_match_message(mission: Mission, notification: Notification) -> NotificationMessage:
    return NotificationMessage(
        nurse_id=notification.nurse_id,
        mission_id=mission.id,
        type=NEW_MISSION_MATCH,
        title="New mission match",
        body=(
            f"New mission available: {mission.title} - "
            f"compatibility score {notification.score:.0f}%"
        ),
        metadata={
            "score": notification.score,
            "distance_km": round(notification.distance_km, 1),
            "urgency": notification.urgency_bucket,
            "delivery_attempt": notification.delivery_attempt,
            "hourly_rate": mission.hourly_rate,
            "start_date": mission.start_date.isoformat(),
        },
    )


class NotificationChannel(ABC):
    """Delivery channel for match notifications."""

    channel_type: str = "unknown"

    @abstractmethod
    async def send(self, message: NotificationMessage) -> bool:
        """Deliver one message; True when the channel accepted it."""
        pass


class LogChannel(NotificationChannel):
    """Log-only delivery, used when no external channel is configured."""

    channel_type = "log"

    async def send(self, message: NotificationMessage) -> bool:
        logger.info(f"Notification to nurse {message.nurse_id}: {message.body}")
        return True


class WebhookChannel(NotificationChannel):
    """Deliver notifications as JSON to an HTTP endpoint (push gateway, mailer...)."""

    channel_type = "webhook"

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def send(self, message: NotificationMessage) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=message.to_payload())
                response.raise_for_status()
                return True
            except httpx.HTTPError as e:
                logger.warning(f"Webhook delivery to nurse {message.nurse_id} failed: {e}")
                return False


def get_channel(webhook_url: Optional[str] = None) -> NotificationChannel:
    """Build the configured delivery channel."""
    settings = get_settings()
    url = webhook_url if webhook_url is not None else settings.notification_webhook_url
    if url:
        return WebhookChannel(url, timeout=settings.notification_webhook_timeout_seconds)
    return LogChannel()
