"""
Base Notification Provider.

Abstract base class for the delivery channels a notification can go out on.
"""

import abc
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class RenderedMessage:
    """A notification after template fields were filled in."""
    notification_id: int
    user_id: str
    title: str
    body: str
    recipient: Optional[str] = None  # channel address, e.g. webhook URL


@dataclass
class DeliveryResult:
    """
    Outcome of one send attempt.

    ``pending_confirmation`` marks a provider that accepted the message but
    will confirm it later through a delivery receipt.
    """
    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None
    pending_confirmation: bool = False

    @classmethod
    def success(cls, provider_message_id: Optional[str] = None) -> "DeliveryResult":
        return cls(ok=True, provider_message_id=provider_message_id)

    @classmethod
    def failure(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error)


class NotificationProvider(abc.ABC):
    """Abstract base class for notification providers."""

    channel: str = ""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize notification provider.

        Args:
            config: Configuration for the provider
        """
        self.config = config or {}
        self.is_initialized = False

    @abc.abstractmethod
    async def send(self, message: RenderedMessage) -> DeliveryResult:
        """
        Send a rendered notification.

        Args:
            message: Rendered notification with its recipient resolved

        Returns:
            DeliveryResult describing the attempt
        """

    @abc.abstractmethod
    def validate_recipient(self, recipient: Optional[str]) -> bool:
        """
        Validate recipient format.

        Args:
            recipient: Recipient identifier

        Returns:
            True if valid, False otherwise
        """

    async def initialize(self):
        """Initialize the provider (e.g., establish connections)."""
        self.is_initialized = True
        logger.info(f"{self.__class__.__name__} initialized")

    async def cleanup(self):
        """Clean up resources (e.g., close connections)."""
        self.is_initialized = False
        logger.info(f"{self.__class__.__name__} cleaned up")
