"""Task model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, String, ForeignKey
from datetime import datetime
from typing import Optional

from coach_app.utils.time import utcnow


class Task(SQLModel, table=True):
    """Task a notification may point at.

    Owned by the task/goal registry; this service only reads titles and
    scheduled times from it.
    """

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    title: str = Field(max_length=200, min_length=1)
    description: str | None = Field(default=None, max_length=1000)
    status: str = Field(default="active", max_length=20)  # active, completed, archived
    scheduled_time: Optional[str] = Field(default=None, max_length=5)  # HH:MM, daily time slot
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
