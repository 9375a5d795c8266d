"""
Notification surfaces.
"""

import logging

import httpx

from guardian import config
from .base import Notifier

logger = logging.getLogger(__name__)


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when no webhook is configured."""

    async def notify(self, title: str, body: str, require_interaction: bool = False) -> None:
        level = logging.WARNING if require_interaction else logging.INFO
        logger.log(level, "NOTIFY | %s | %s", title, body)


class WebhookNotifier(Notifier):
    """
    Posts notifications as JSON to a webhook. Failures are logged, never raised.
    """

    def __init__(self, url: str = config.NOTIFY_WEBHOOK_URL, client: httpx.AsyncClient = None):
        self.url = url
        self._client = client

    async def notify(self, title: str, body: str, require_interaction: bool = False) -> None:
        payload = {"title": title, "body": body, "requireInteraction": require_interaction}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to deliver notification '%s': %s", title, e)


def default_notifier() -> Notifier:
    if config.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(config.NOTIFY_WEBHOOK_URL)
    return LogNotifier()
