"""Notification model for SQLModel."""
from sqlmodel import SQLModel, Field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from sqlalchemy import CheckConstraint, Column, DateTime, Index, JSON, String, Text, text

from coach_app.utils.time import utcnow


class NotificationType(str, Enum):
    """Closed set of notification variants"""
    MORNING_MESSAGE = "morning_message"
    PRE_REMINDER = "pre_reminder"
    REMINDER = "reminder"
    POST_REMINDER_FOLLOW_UP = "post_reminder_follow_up"
    FOLLOW_UP = "follow_up"


class NotificationStatus(str, Enum):
    """Delivery lifecycle states"""
    PENDING = "pending"
    DELIVERING = "delivering"  # claimed by a dispatcher for one attempt
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryChannel(str, Enum):
    IN_APP = "in_app"
    WEBHOOK = "webhook"


# Types planned around a task's scheduled time
TASK_REMINDER_TYPES = (
    NotificationType.PRE_REMINDER.value,
    NotificationType.REMINDER.value,
    NotificationType.POST_REMINDER_FOLLOW_UP.value,
)


class Notification(SQLModel, table=True):
    """
    One concrete, schedulable message instance.

    Coach-initiated message schedules share this table and are told apart by
    a non-null ``tone``. Soft-deleted rows keep their last status and are
    excluded from every active query through ``deleted_at``.
    """

    __tablename__ = "notification"
    __table_args__ = (
        # A slug is only reserved while its row is alive
        Index(
            "uq_notification_user_slug_active",
            "user_id",
            "slug",
            unique=True,
            sqlite_where=text("deleted_at IS NULL AND slug IS NOT NULL"),
            postgresql_where=text("deleted_at IS NULL AND slug IS NOT NULL"),
        ),
        Index("idx_notification_status_scheduled_for", "status", "scheduled_for"),
        Index("idx_notification_user_scheduled_for", "user_id", "scheduled_for"),
        CheckConstraint("(status = 'sent') = (sent_at IS NOT NULL)", name="ck_notification_sent_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(sa_column=Column(String(100), nullable=False, index=True))
    type: str = Field(sa_column=Column(String(40), nullable=False))
    title: str = Field(default="", sa_column=Column(String(200), nullable=False, default=""))
    content: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    # Naive UTC throughout; plain DateTime keeps sqlmodel from requiring tz-aware values
    scheduled_for: datetime = Field(sa_column=Column(DateTime, nullable=False))
    sent_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    status: str = Field(default=NotificationStatus.PENDING.value, max_length=20)
    tone: Optional[str] = Field(default=None, max_length=30)
    channel: str = Field(default=DeliveryChannel.IN_APP.value, max_length=20)
    slug: Optional[str] = Field(default=None, max_length=120)

    # Metadata, kept as named fields
    task_id: Optional[int] = Field(default=None, index=True)  # weak reference, lookup only
    rescheduled: bool = Field(default=False)
    snoozed: bool = Field(default=False)
    duplicated_from: Optional[int] = Field(default=None)
    retry_count: int = Field(default=0)
    extra: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))

    claimed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    provider_message_id: Optional[str] = Field(default=None, max_length=200)
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))

    @property
    def metadata_dict(self) -> Dict[str, Any]:
        """Metadata as one mapping: named fields plus free-form extras."""
        data = dict(self.extra or {})
        data.update({
            "task_id": self.task_id,
            "rescheduled": self.rescheduled,
            "snoozed": self.snoozed,
            "duplicated_from": self.duplicated_from,
            "retry_count": self.retry_count,
        })
        return data
