"""Delivery gateway: routes a rendered notification to its channel provider."""

from typing import Dict, Iterable
import logging

from coach_app.errors import DeliveryFailedError
from coach_app.providers.base_provider import DeliveryResult, NotificationProvider, RenderedMessage

logger = logging.getLogger(__name__)


class DeliveryGateway:
    """Channel name -> provider dispatch."""

    def __init__(self, providers: Iterable[NotificationProvider]):
        self.providers: Dict[str, NotificationProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: NotificationProvider) -> None:
        if provider.channel in self.providers:
            logger.warning(f"Provider for channel {provider.channel} already registered, overwriting")
        self.providers[provider.channel] = provider

    async def send(self, channel: str, message: RenderedMessage) -> DeliveryResult:
        provider = self.providers.get(channel)
        if provider is None:
            logger.error(f"No provider registered for channel '{channel}'")
            raise DeliveryFailedError(f"Unsupported channel: {channel}", {"channel": channel})
        return await provider.send(message)

    async def initialize(self) -> None:
        for provider in self.providers.values():
            await provider.initialize()

    async def cleanup(self) -> None:
        for provider in self.providers.values():
            await provider.cleanup()
