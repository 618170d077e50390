"""SQLModel tables for the coach notification service."""

from .user import User
from .task import Task
from .notification import Notification, NotificationType, NotificationStatus, DeliveryChannel
from .message import InAppMessage

__all__ = [
    "User",
    "Task",
    "Notification",
    "NotificationType",
    "NotificationStatus",
    "DeliveryChannel",
    "InAppMessage",
]
