"""In-app inbox delivery channel."""

from typing import Any, Dict, Optional
import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session

from coach_app.models.message import InAppMessage
from coach_app.providers.base_provider import DeliveryResult, NotificationProvider, RenderedMessage

logger = logging.getLogger(__name__)


class InAppProvider(NotificationProvider):
    """Writes the rendered notification into the user's in-app inbox."""

    channel = "in_app"

    def __init__(self, engine: Engine, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.engine = engine

    async def send(self, message: RenderedMessage) -> DeliveryResult:
        if not self.validate_recipient(message.user_id):
            return DeliveryResult.failure("Missing user id for in-app delivery")

        inbox_row = InAppMessage(
            user_id=message.user_id,
            notification_id=message.notification_id,
            title=message.title,
            content=message.body,
        )
        with Session(self.engine) as session:
            session.add(inbox_row)
            session.commit()
            session.refresh(inbox_row)

        logger.info(f"In-app message {inbox_row.id} stored for user {message.user_id}")
        return DeliveryResult.success(provider_message_id=f"in_app_{inbox_row.id}")

    def validate_recipient(self, recipient: Optional[str]) -> bool:
        return bool(recipient)
