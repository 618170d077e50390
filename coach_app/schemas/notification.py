"""Notification schemas for the scheduling API."""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from coach_app.models.notification import Notification, NotificationType, DeliveryChannel


class NotificationMetadata(BaseModel):
    """Caller-supplied metadata. Unknown keys are kept as free-form extras."""
    task_id: Optional[int] = Field(None, alias="taskId")
    rescheduled: Optional[bool] = None  # managed by reschedule(), ignored on input
    snoozed: Optional[bool] = None  # managed by snooze(), ignored on input
    duplicated_from: Optional[int] = Field(None, alias="duplicatedFrom")  # managed by duplicate()

    class Config:
        populate_by_name = True
        extra = "allow"

    def extras(self) -> Dict[str, Any]:
        """Keys outside the named metadata fields."""
        return dict(self.model_extra or {})


class NotificationCreate(BaseModel):
    """Schema for creating a notification."""
    type: NotificationType
    title: str = Field("", max_length=200)
    content: Optional[str] = Field(None, max_length=4000)
    scheduled_for: datetime  # ISO-8601; naive values are read as UTC
    metadata: Optional[NotificationMetadata] = None
    tone: Optional[str] = Field(None, max_length=30)
    channel: Optional[DeliveryChannel] = None
    slug: Optional[str] = Field(None, pattern=r"^[a-z0-9][a-z0-9-]{0,119}$")


class NotificationUpdate(BaseModel):
    """Schema for editing a pending notification (title/content/metadata/tone only)."""
    title: Optional[str] = Field(None, max_length=200)
    content: Optional[str] = Field(None, max_length=4000)
    metadata: Optional[NotificationMetadata] = None
    tone: Optional[str] = Field(None, max_length=30)


class RescheduleRequest(BaseModel):
    scheduled_for: datetime


class SnoozeRequest(BaseModel):
    minutes: int = Field(..., ge=1, le=1440)  # 1 minute to 24 hours


class DuplicateRequest(BaseModel):
    scheduled_for: Optional[datetime] = None  # defaults to the source's time


class DeliveryReceipt(BaseModel):
    """Asynchronous confirmation posted back by a delivery provider."""
    notification_id: int
    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class NotificationResponse(BaseModel):
    """Schema for notification API responses."""
    id: int
    user_id: str
    type: str
    title: str
    content: Optional[str] = None
    scheduled_for: datetime
    sent_at: Optional[datetime] = None
    status: str
    tone: Optional[str] = None
    channel: str
    slug: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            content=notification.content,
            scheduled_for=_as_utc(notification.scheduled_for),
            sent_at=_as_utc(notification.sent_at),
            status=notification.status,
            tone=notification.tone,
            channel=notification.channel,
            slug=notification.slug,
            metadata=notification.metadata_dict,
            created_at=_as_utc(notification.created_at),
            updated_at=_as_utc(notification.updated_at),
            deleted_at=_as_utc(notification.deleted_at),
        )


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    count: int
