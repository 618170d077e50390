"""User model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from datetime import datetime
from typing import Optional
import uuid

from coach_app.utils.time import utcnow


class User(SQLModel, table=True):
    """User profile fields the scheduler reads: name, zone and messaging preferences."""

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True
    )
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    time_zone: str = Field(default="UTC", max_length=64)  # IANA zone name
    preferred_time: str = Field(default="08:00", max_length=5)  # HH:MM, morning briefing
    messaging_enabled: bool = Field(default=True)
    webhook_url: Optional[str] = Field(default=None, max_length=500)  # chat channel target
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
