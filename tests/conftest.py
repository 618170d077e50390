"""Shared fixtures: in-memory database, a recording delivery channel and a wired subsystem."""
import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from sqlmodel import Session

from coach_app.config import Settings
from coach_app.db.config import build_engine
from coach_app.db.init import init_db
from coach_app.models import Task, User
from coach_app.providers.base_provider import DeliveryResult, NotificationProvider, RenderedMessage
from coach_app.providers.gateway import DeliveryGateway
from coach_app.schemas.notification import NotificationMetadata
from coach_app.services.subsystem import build_subsystem

# Fixed "current instant" (naive UTC) used by service-level tests
NOW = datetime(2026, 3, 2, 12, 0, 0)


class RecordingProvider(NotificationProvider):
    """In-app stand-in that records messages and replays scripted outcomes."""

    channel = "in_app"

    def __init__(self, outcomes: Optional[list] = None, delay: float = 0.0, on_send=None):
        super().__init__()
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.on_send = on_send
        self.calls: List[RenderedMessage] = []

    async def send(self, message: RenderedMessage) -> DeliveryResult:
        self.calls.append(message)
        if self.on_send is not None:
            self.on_send(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else DeliveryResult.success(f"msg-{len(self.calls)}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def validate_recipient(self, recipient) -> bool:
        return True


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        dispatcher_enabled=False,
        daily_planning_enabled=False,
        delivery_timeout_seconds=0.5,
        delivery_callback_token="receipt-secret",
    )


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def provider():
    return RecordingProvider()


@pytest.fixture
def subsystem(engine, settings, provider):
    return build_subsystem(engine, settings, gateway=DeliveryGateway([provider]))


@pytest.fixture
def user(engine):
    user = User(id="user-1", email="ada@example.com", name="Ada", time_zone="UTC", preferred_time="08:00")
    with Session(engine, expire_on_commit=False) as session:
        session.add(user)
        session.commit()
    return user


@pytest.fixture
def other_user(engine):
    user = User(id="user-2", email="grace@example.com", name="Grace", time_zone="UTC")
    with Session(engine, expire_on_commit=False) as session:
        session.add(user)
        session.commit()
    return user


def add_task(engine, user_id: str, title: str, scheduled_time: Optional[str] = None, **fields) -> Task:
    task = Task(user_id=user_id, title=title, scheduled_time=scheduled_time, **fields)
    with Session(engine, expire_on_commit=False) as session:
        session.add(task)
        session.commit()
        session.refresh(task)
    return task


def schedule(subsystem, user_id: str = "user-1", minutes: int = 30, type: str = "reminder", now: datetime = NOW, **fields):
    """Create a pending notification ``minutes`` after ``now``."""
    metadata = fields.pop("metadata", None)
    if isinstance(metadata, dict):
        metadata = NotificationMetadata.model_validate(metadata)
    return subsystem.service.create(
        user_id=user_id,
        type=type,
        scheduled_for=now + timedelta(minutes=minutes),
        metadata=metadata,
        now=now,
        **fields,
    )
