# services/notifications/notification_service.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def send(self, user_id: str, message: str) -> None:
        """Deliver one message. Must not raise: delivery problems are logged and dropped."""
        ...


class LoggingNotificationSink:
    """Default sink: writes the message to the log instead of a chat channel."""

    async def send(self, user_id: str, message: str) -> None:
        logger.info("notification channel=log message=%s", message)


class WebhookNotificationSink:
    """POSTs `{"user", "message", "format"}` as JSON to a webhook (chat bot relay, Slack-style hook...)."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(self, user_id: str, message: str) -> None:
        payload = {"user": user_id, "message": message, "format": "markdown"}
        try:
            if self._client is not None:
                r = await self._client.post(self.url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as c:
                    r = await c.post(self.url, json=payload)
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("notification_failed channel=webhook error=%s", e)


def build_notification_sink(webhook_url: Optional[str] = None, timeout: float = 10.0) -> NotificationSink:
    if webhook_url:
        return WebhookNotificationSink(webhook_url, timeout=timeout)
    return LoggingNotificationSink()
