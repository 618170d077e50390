"""
Schedule service: the single place where notifications change state.

REST handlers, the function-calling tools and the reminder planner all call
through this class; none of them writes the store directly.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

from coach_app.config import Settings
from coach_app.errors import (
    GoneError,
    InvalidScheduleError,
    InvalidStateError,
    PersistenceConflictError,
)
from coach_app.models.notification import (
    DeliveryChannel,
    Notification,
    NotificationStatus,
    NotificationType,
    TASK_REMINDER_TYPES,
)
from coach_app.schemas.notification import NotificationMetadata
from coach_app.services.notification_store import NotificationFilter, NotificationStore
from coach_app.utils.time import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

PENDING = NotificationStatus.PENDING.value
DELIVERING = NotificationStatus.DELIVERING.value
CANCELLED = NotificationStatus.CANCELLED.value


class ScheduleService:
    """Mutation engine for notifications: create, edit, reschedule, snooze, duplicate, cancel, delete."""

    def __init__(self, store: NotificationStore, settings: Settings, event_publisher=None):
        self.store = store
        self.settings = settings
        self.events = event_publisher

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        type: str,
        scheduled_for: datetime,
        title: str = "",
        content: Optional[str] = None,
        metadata: Optional[NotificationMetadata] = None,
        tone: Optional[str] = None,
        channel: Optional[str] = None,
        slug: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Create a pending notification; raises InvalidSchedule for past times, DuplicateKey for taken slugs."""
        if not user_id:
            raise InvalidScheduleError("user_id is required", {"field": "user_id"})
        notification_type = self._validate_type(type)
        metadata = metadata or NotificationMetadata()

        draft = Notification(
            user_id=user_id,
            type=notification_type,
            title=title or "",
            content=content,
            scheduled_for=to_naive_utc(scheduled_for),
            tone=tone,
            channel=self._validate_channel(channel),
            slug=slug or None,
            task_id=metadata.task_id,
            extra=metadata.extras(),
        )
        return self.store.create(draft, now=now)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reschedule(self, notification_id: int, new_time: datetime, now: Optional[datetime] = None) -> Notification:
        """Move a pending notification to ``new_time`` and flag it rescheduled."""
        new_time = to_naive_utc(new_time)
        self._reject_past(new_time, now)

        def apply(current: Notification) -> Dict[str, Any]:
            self._require_pending(current, "reschedule")
            return {"scheduled_for": new_time, "rescheduled": True}

        updated = self._mutate(notification_id, apply, now)
        logger.info(f"Rescheduled notification {notification_id} to {new_time.isoformat()}")
        return updated

    def snooze(self, notification_id: int, minutes: int, now: Optional[datetime] = None) -> Notification:
        """Push a pending notification ``minutes`` later and flag it snoozed."""
        if not isinstance(minutes, int) or minutes <= 0:
            raise InvalidScheduleError("Snooze minutes must be a positive integer", {"minutes": minutes})
        if minutes > self.settings.max_snooze_minutes:
            raise InvalidScheduleError(
                f"Snooze is limited to {self.settings.max_snooze_minutes} minutes",
                {"minutes": minutes},
            )

        def apply(current: Notification) -> Dict[str, Any]:
            self._require_pending(current, "snooze")
            return {
                "scheduled_for": current.scheduled_for + timedelta(minutes=minutes),
                "rescheduled": True,
                "snoozed": True,
            }

        updated = self._mutate(notification_id, apply, now)
        logger.info(f"Snoozed notification {notification_id} by {minutes} minutes")
        return updated

    def edit(
        self,
        notification_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[NotificationMetadata] = None,
        tone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Partial update of title/content/metadata/tone while pending."""
        if title is None and content is None and metadata is None and tone is None:
            raise InvalidScheduleError("At least one field must be provided for update")

        def apply(current: Notification) -> Dict[str, Any]:
            self._require_pending(current, "edit")
            patch: Dict[str, Any] = {}
            if title is not None:
                patch["title"] = title
            if content is not None:
                patch["content"] = content
            if tone is not None:
                patch["tone"] = tone
            if metadata is not None:
                if "task_id" in metadata.model_fields_set:
                    patch["task_id"] = metadata.task_id
                extras = metadata.extras()
                if extras:
                    merged = dict(current.extra or {})
                    merged.update(extras)
                    patch["extra"] = merged
            return patch

        return self._mutate(notification_id, apply, now)

    def duplicate(
        self,
        notification_id: int,
        scheduled_for: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """
        Copy a notification into a new, independent pending one.

        The copy keeps type, title, content, tone, channel and metadata, points
        back at its source through ``duplicated_from`` and starts with clean
        reschedule/snooze/retry markers. Slugs are never copied.
        """
        source = self.store.get_active(notification_id)
        target_time = to_naive_utc(scheduled_for) if scheduled_for is not None else source.scheduled_for

        draft = Notification(
            user_id=source.user_id,
            type=source.type,
            title=source.title,
            content=source.content,
            scheduled_for=target_time,
            tone=source.tone,
            channel=source.channel,
            task_id=source.task_id,
            duplicated_from=source.id,
            extra=dict(source.extra or {}),
        )
        copy = self.store.create(draft, now=now)
        logger.info(f"Duplicated notification {source.id} as {copy.id}")
        return copy

    def cancel(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        """
        ``pending|delivering -> cancelled``.

        Cancelling a cancelled or deleted notification returns it unchanged.
        Cancelling a claimed notification makes the dispatcher discard its
        delivery result.
        """
        for _ in range(self.settings.conflict_retry_attempts):
            current = self.store.get(notification_id)
            if current.deleted_at is not None or current.status == CANCELLED:
                return current
            if current.status not in (PENDING, DELIVERING):
                raise InvalidStateError(
                    f"Cannot cancel a notification that is {current.status}",
                    {"id": notification_id, "status": current.status},
                )
            cancelled = self.store.transition(
                notification_id,
                (PENDING, DELIVERING),
                {"status": CANCELLED, "claimed_at": None},
                now=now,
            )
            if cancelled is not None:
                logger.info(f"Cancelled notification {notification_id} (was {current.status})")
                self._publish_event("notification.cancelled", cancelled)
                return cancelled
        raise InvalidStateError(
            f"Notification {notification_id} kept changing while cancelling",
            {"id": notification_id},
        )

    def delete(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        """Soft delete; idempotent and immediately drops the row from the schedule index."""
        deleted = self.store.soft_delete(notification_id, now=now)
        self._publish_event("notification.deleted", deleted)
        return deleted

    def cancel_for_task(self, user_id: str, task_id: int, now: Optional[datetime] = None) -> List[Notification]:
        """Cancel the pending reminder family of a task (task completed or removed)."""
        pending = self.store.list_active(
            user_id,
            NotificationFilter(task_id=task_id, status=PENDING, types=TASK_REMINDER_TYPES),
        )
        cancelled = []
        for notification in pending:
            result = self.cancel(notification.id, now=now)
            if result.status == CANCELLED:
                cancelled.append(result)
        logger.info(f"Cancelled {len(cancelled)} pending reminders for task {task_id} (user {user_id})")
        return cancelled

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _mutate(
        self,
        notification_id: int,
        apply: Callable[[Notification], Dict[str, Any]],
        now: Optional[datetime],
    ) -> Notification:
        """Read, build a patch, compare-and-swap; re-read and retry on lost races."""
        for attempt in range(1, self.settings.conflict_retry_attempts + 1):
            current = self.store.get_active(notification_id)
            patch = apply(current)
            if not patch:
                return current
            try:
                return self.store.update(
                    notification_id,
                    patch,
                    expected_status=(PENDING,),
                    expected_version=current.version,
                    now=now,
                )
            except PersistenceConflictError:
                logger.warning(f"Conflict updating notification {notification_id} (attempt {attempt}), retrying")
        raise InvalidStateError(
            f"Notification {notification_id} changed state while it was being updated",
            {"id": notification_id},
        )

    def _require_pending(self, notification: Notification, operation: str) -> None:
        if notification.deleted_at is not None:
            raise GoneError(f"Notification {notification.id} has been deleted", {"id": notification.id})
        if notification.status != PENDING:
            raise InvalidStateError(
                f"Cannot {operation} a notification that is {notification.status}",
                {"id": notification.id, "status": notification.status, "operation": operation},
            )

    def _reject_past(self, instant: datetime, now: Optional[datetime]) -> None:
        now = now or utcnow()
        if instant < now - timedelta(seconds=self.settings.creation_grace_seconds):
            raise InvalidScheduleError(
                "Cannot move a notification into the past",
                {"scheduled_for": instant.isoformat(), "now": now.isoformat()},
            )

    @staticmethod
    def _validate_type(value: str) -> str:
        try:
            return NotificationType(value).value
        except ValueError:
            raise InvalidScheduleError(
                f"Unknown notification type: {value}",
                {"field": "type", "allowed": [item.value for item in NotificationType]},
            )

    def _validate_channel(self, value: Optional[str]) -> str:
        try:
            return DeliveryChannel(value or self.settings.default_channel).value
        except ValueError:
            raise InvalidScheduleError(
                f"Unknown delivery channel: {value}",
                {"field": "channel", "allowed": [item.value for item in DeliveryChannel]},
            )

    def _publish_event(self, event_type: str, notification: Notification) -> None:
        if self.events is None:
            return
        self.events.publish_notification_event(event_type, notification)
