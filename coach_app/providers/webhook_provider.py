"""Chat webhook delivery channel."""

from typing import Any, Dict, Optional
import logging
import re

import httpx

from coach_app.providers.base_provider import DeliveryResult, NotificationProvider, RenderedMessage

logger = logging.getLogger(__name__)


class WebhookProvider(NotificationProvider):
    """
    Posts the rendered notification to a chat-provider webhook.

    The recipient is the user's own webhook URL when set, otherwise the
    service-wide ``webhook_url`` from the provider config.
    """

    channel = "webhook"

    def __init__(self, config: Optional[Dict[str, Any]] = None, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self.default_url = self.config.get("webhook_url", "")
        self.timeout = float(self.config.get("timeout_seconds", 10.0))
        self._client = client

    async def send(self, message: RenderedMessage) -> DeliveryResult:
        url = message.recipient or self.default_url
        if not self.validate_recipient(url):
            return DeliveryResult.failure("Invalid or missing webhook URL")

        payload = {
            "text": f"*{message.title}*\n{message.body}" if message.title else message.body,
            "notification_id": message.notification_id,
            "user_id": message.user_id,
        }
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery of notification {message.notification_id} failed: {str(e)}")
            return DeliveryResult.failure(str(e) or e.__class__.__name__)

        # The provider has accepted the message; nothing below may turn this into a failure
        provider_message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            try:
                body = response.json()
            except ValueError as e:
                logger.warning(f"Webhook reply for notification {message.notification_id} is not valid JSON: {str(e)}")
                body = None
            if isinstance(body, dict):
                provider_message_id = body.get("id") or body.get("message_id") or body.get("ts")

        logger.info(f"Webhook accepted notification {message.notification_id} (status {response.status_code})")
        return DeliveryResult.success(provider_message_id=str(provider_message_id) if provider_message_id else None)

    def validate_recipient(self, recipient: Optional[str]) -> bool:
        """Validate webhook URL format."""
        if not recipient:
            return False
        return bool(re.match(r'^https?://[^\s/$.?#].[^\s]*$', recipient))
