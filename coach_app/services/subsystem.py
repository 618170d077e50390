"""Wiring of the notification subsystem: one index, one store, one dispatcher per process."""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from coach_app.config import Settings, get_settings
from coach_app.dapr.client import DaprEventPublisher
from coach_app.providers.gateway import DeliveryGateway
from coach_app.providers.in_app_provider import InAppProvider
from coach_app.providers.webhook_provider import WebhookProvider
from coach_app.services.command_surface import CommandSurface
from coach_app.services.dispatcher import NotificationDispatcher
from coach_app.services.notification_store import NotificationStore
from coach_app.services.reference_resolver import ReferenceResolver
from coach_app.services.reminder_scheduler import ReminderScheduler
from coach_app.services.schedule_index import ScheduleIndex
from coach_app.services.schedule_service import ScheduleService
from coach_app.services.task_registry import TaskRegistry
from coach_app.utils.metrics import MetricsCollector


@dataclass
class NotificationSubsystem:
    """Handles to every component; passed around instead of module-level singletons."""
    settings: Settings
    engine: Engine
    index: ScheduleIndex
    store: NotificationStore
    registry: TaskRegistry
    service: ScheduleService
    resolver: ReferenceResolver
    commands: CommandSurface
    planner: ReminderScheduler
    gateway: DeliveryGateway
    dispatcher: NotificationDispatcher
    metrics: MetricsCollector
    events: DaprEventPublisher

    def load_index(self) -> int:
        """Fill the schedule index from the store (process start)."""
        return self.index.rebuild(self.store.pending_entries())


def default_gateway(engine: Engine, settings: Settings) -> DeliveryGateway:
    return DeliveryGateway([
        InAppProvider(engine),
        WebhookProvider({
            "webhook_url": settings.webhook_url,
            "timeout_seconds": settings.delivery_timeout_seconds,
        }),
    ])


def build_subsystem(
    engine: Engine,
    settings: Optional[Settings] = None,
    gateway: Optional[DeliveryGateway] = None,
    event_publisher: Optional[DaprEventPublisher] = None,
) -> NotificationSubsystem:
    settings = settings or get_settings()
    events = event_publisher or DaprEventPublisher(settings)
    metrics = MetricsCollector()
    gateway = gateway or default_gateway(engine, settings)

    index = ScheduleIndex()
    store = NotificationStore(engine, index, settings)
    registry = TaskRegistry(engine)
    service = ScheduleService(store, settings, event_publisher=events)
    resolver = ReferenceResolver(store, registry, default_time_zone=settings.default_time_zone)
    commands = CommandSurface(service, store, resolver)
    planner = ReminderScheduler(service, store, registry, settings)
    dispatcher = NotificationDispatcher(
        store,
        registry,
        gateway,
        settings,
        metrics=metrics,
        event_publisher=events,
        planner=planner,
    )
    return NotificationSubsystem(
        settings=settings,
        engine=engine,
        index=index,
        store=store,
        registry=registry,
        service=service,
        resolver=resolver,
        commands=commands,
        planner=planner,
        gateway=gateway,
        dispatcher=dispatcher,
        metrics=metrics,
        events=events,
    )
