"""Delivery channels for rendered notifications."""

from .base_provider import DeliveryResult, NotificationProvider, RenderedMessage
from .gateway import DeliveryGateway
from .in_app_provider import InAppProvider
from .webhook_provider import WebhookProvider

__all__ = [
    "DeliveryResult",
    "NotificationProvider",
    "RenderedMessage",
    "DeliveryGateway",
    "InAppProvider",
    "WebhookProvider",
]
