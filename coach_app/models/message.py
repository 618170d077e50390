"""
In-app Message Model

Inbox rows written by the in-app delivery channel. One row per delivered
notification attempt; rows are never updated except to mark them read.
"""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import DateTime, Text, String

from coach_app.utils.time import utcnow


class InAppMessage(SQLModel, table=True):
    __tablename__ = "in_app_message"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(sa_column=Column(String(100), index=True, nullable=False))
    notification_id: int = Field(index=True)
    title: str = Field(default="", max_length=200)
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, index=True, nullable=False))
    read_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
