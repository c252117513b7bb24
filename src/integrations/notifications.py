"""
Outbound notification delivery (email/push), interface only.

Template content lives with the delivery service; this side only names the
template and passes its data.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from src.config import get_settings
from src.integrations.http import request_with_retry
from src.logging_config import get_logger

logger = get_logger(__name__)


class Notification(BaseModel):
    """A message for one recipient."""

    recipient_id: str
    recipient_email: Optional[str] = None
    template: str
    data: Dict[str, Any] = Field(default_factory=dict)


class NotificationGateway(ABC):
    """Interface to the notification service."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver ``notification``. May raise; callers treat failures as non-fatal."""


class HttpNotificationGateway(NotificationGateway):
    """Posts notifications to the delivery service."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0):
        self.base_url = (base_url or get_settings().notifications_api_url).rstrip("/")
        self.timeout = timeout

    async def send(self, notification: Notification) -> None:
        async with httpx.AsyncClient() as client:
            response = await request_with_retry(
                client,
                "POST",
                f"{self.base_url}/notifications",
                json=notification.model_dump(mode="json"),
                timeout=self.timeout,
            )
        response.raise_for_status()


class LoggingNotificationGateway(NotificationGateway):
    """Used when no delivery service is configured."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notification queued",
            extra={
                "template": notification.template,
                "recipient_id": notification.recipient_id,
            },
        )


def build_notification_gateway() -> NotificationGateway:
    if get_settings().notifications_api_url:
        return HttpNotificationGateway()
    return LoggingNotificationGateway()
