import asyncio

from coach_app.config import Settings
from coach_app.dapr import client as dapr_client
from coach_app.dapr.client import DaprEventPublisher
from coach_app.providers.base_provider import DeliveryResult
from coach_app.providers.gateway import DeliveryGateway
from coach_app.services.subsystem import build_subsystem

from tests.conftest import NOW, RecordingProvider, schedule


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish_notification_event(self, event_type, notification):
        self.events.append((event_type, notification.id))
        return {"success": True}


def test_lifecycle_events_are_published(engine, settings):
    publisher = RecordingPublisher()
    provider = RecordingProvider(outcomes=[DeliveryResult.success("m1")])
    subsystem = build_subsystem(engine, settings, gateway=DeliveryGateway([provider]), event_publisher=publisher)

    sent = schedule(subsystem, minutes=0)
    cancelled = schedule(subsystem, minutes=30)
    deleted = schedule(subsystem, minutes=40)
    subsystem.service.cancel(cancelled.id, now=NOW)
    subsystem.service.delete(deleted.id, now=NOW)
    asyncio.run(subsystem.dispatcher.tick(now=NOW))

    assert publisher.events == [
        ("notification.cancelled", cancelled.id),
        ("notification.deleted", deleted.id),
        ("notification.sent", sent.id),
    ]


def test_dev_mode_publisher_only_logs(settings):
    publisher = DaprEventPublisher(settings)
    result = publisher.publish_event("notification-events", "notification.sent", {"notification_id": 1})
    assert result["success"] is True


def test_broker_failure_does_not_propagate(subsystem, monkeypatch):
    class BrokenClient:
        def __enter__(self):
            raise ConnectionError("sidecar unavailable")

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(dapr_client, "DaprClient", BrokenClient)
    publisher = DaprEventPublisher(Settings(dapr_enabled=True))
    notification = schedule(subsystem)

    result = publisher.publish_notification_event("notification.created", notification)
    assert result["success"] is False
    assert "sidecar unavailable" in result["error"]


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("TICK_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("DISPATCHER_ENABLED", "false")
    monkeypatch.setenv("CHAT_WEBHOOK_URL", "https://chat.example.com/hook")

    settings = Settings.from_env()
    assert settings.tick_interval_seconds == 5.0
    assert settings.max_retries == 5
    assert settings.dispatcher_enabled is False
    assert settings.webhook_url == "https://chat.example.com/hook"
    assert settings.stale_claim_seconds == 300
