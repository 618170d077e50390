"""Dapr client for publishing notification lifecycle events."""
import json
import uuid
from typing import Dict, Any, Optional
import logging

from dapr.clients import DaprClient

from coach_app.config import Settings, get_settings
from coach_app.utils.time import utcnow

logger = logging.getLogger(__name__)


def notification_event_data(notification) -> Dict[str, Any]:
    return {
        "notification_id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "status": notification.status,
        "scheduled_for": notification.scheduled_for.isoformat() if notification.scheduled_for else None,
        "sent_at": notification.sent_at.isoformat() if notification.sent_at else None,
        "slug": notification.slug,
        "metadata": notification.metadata_dict,
    }


class DaprEventPublisher:
    """Publishes notification events to the pub/sub broker via the Dapr sidecar."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize Dapr event publisher."""
        settings = settings or get_settings()
        self.enabled = settings.dapr_enabled
        self.pubsub_name = settings.dapr_pubsub_name
        self.topic = settings.dapr_topic
        if not self.enabled:
            logger.warning("Dapr disabled. Running in development mode without Dapr integration.")

    def publish_event(self, topic: str, event_type: str, data: Dict[str, Any], source: str = "coach-notifications"):
        """Publish an event to a topic via Dapr pub/sub."""
        if not self.enabled:
            # Development mode: log the event instead of publishing
            logger.info(f"[DEV MODE] Would publish to topic '{topic}': {event_type} from {source} with data {data}")
            return {"success": True, "message": "Event logged in dev mode"}

        event_envelope = {
            "event_id": str(uuid.uuid4()),
            "type": event_type,
            "timestamp": utcnow().isoformat(),
            "source": source,
            "data": data
        }

        with DaprClient() as client:
            client.publish_event(
                pubsub_name=self.pubsub_name,
                topic_name=topic,
                data=json.dumps(event_envelope, default=str),
                data_content_type="application/json"
            )

        logger.info(f"Published event {event_type} to topic {topic}")
        return {"success": True, "event_id": event_envelope["event_id"]}

    def publish_notification_event(self, event_type: str, notification) -> Dict[str, Any]:
        """
        Publish a notification lifecycle event (created, sent, failed, cancelled, ...).

        Broker failures are logged and reported in the return value; they never
        roll back the state change that triggered the event.
        """
        try:
            return self.publish_event(
                topic=self.topic,
                event_type=event_type,
                data=notification_event_data(notification),
            )
        except Exception as e:
            logger.error(f"Failed to publish {event_type} for notification {notification.id}: {str(e)}")
            return {"success": False, "error": str(e)}
