"""Reminder Scheduler Service."""
from datetime import date, datetime, timedelta
from typing import List, Optional, Set, Tuple
import logging

from coach_app.config import Settings
from coach_app.errors import SchedulerError
from coach_app.models.notification import Notification, NotificationStatus, NotificationType, TASK_REMINDER_TYPES
from coach_app.models.user import User
from coach_app.schemas.notification import NotificationMetadata
from coach_app.services.notification_store import NotificationFilter, NotificationStore
from coach_app.services.schedule_service import ScheduleService
from coach_app.services.task_registry import TaskInfo, TaskRegistry
from coach_app.utils.time import local_date_of, local_day_bounds, local_time_to_utc, utcnow

logger = logging.getLogger(__name__)

MORNING_TONE = "neutral"


class ReminderScheduler:
    """Plans morning messages and the reminder family of each scheduled task."""

    def __init__(self, service: ScheduleService, store: NotificationStore, registry: TaskRegistry, settings: Settings):
        self.service = service
        self.store = store
        self.registry = registry
        self.settings = settings
        # (user_id, local date) pairs already planned by this process
        self._planned: Set[Tuple[str, date]] = set()

    def _zone(self, user: User) -> str:
        return user.time_zone or self.settings.default_time_zone

    def schedule_reminders_for_task(
        self,
        task: TaskInfo,
        user: User,
        on_date: date,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        Create pre-reminder, reminder and follow-up for a task's time slot on ``on_date``.

        Args:
            task: Task with a ``scheduled_time`` (HH:MM, user-local)
            user: Owner of the task
            on_date: User-local calendar day to plan for
            now: Current instant; reminder times already past are skipped

        Returns:
            Notifications created (empty if the task already has reminders that day)
        """
        if not task.scheduled_time:
            return []
        now = now or utcnow()
        zone = self._zone(user)

        start, end = local_day_bounds(on_date, zone)
        existing = self.store.list_active(
            user.id,
            NotificationFilter(start=start, end=end, task_id=task.id, types=TASK_REMINDER_TYPES),
        )
        if existing:
            logger.debug(f"Task {task.id} already has {len(existing)} reminders on {on_date}")
            return []

        try:
            due_at = local_time_to_utc(on_date, task.scheduled_time, zone)
        except ValueError:
            logger.warning(f"Task {task.id} has an invalid scheduled time '{task.scheduled_time}', skipping")
            return []

        plan = [
            (NotificationType.PRE_REMINDER.value, due_at - timedelta(minutes=self.settings.pre_reminder_minutes)),
            (NotificationType.REMINDER.value, due_at),
            (NotificationType.POST_REMINDER_FOLLOW_UP.value, due_at + timedelta(minutes=self.settings.post_reminder_minutes)),
        ]

        created = []
        for notification_type, scheduled_for in plan:
            if scheduled_for < now:
                continue
            created.append(self.service.create(
                user_id=user.id,
                type=notification_type,
                scheduled_for=scheduled_for,
                title=task.title,
                metadata=NotificationMetadata(task_id=task.id),
                now=now,
            ))
        logger.info(f"Scheduled {len(created)} reminders for task {task.id} (user {user.id}) on {on_date}")
        return created

    def schedule_morning_message(self, user: User, now: Optional[datetime] = None) -> Optional[Notification]:
        """
        Schedule the next morning briefing at the user's preferred local time.

        A user has at most one pending morning message; returns None when one
        already exists.
        """
        now = now or utcnow()
        pending = self.store.list_active(
            user.id,
            NotificationFilter(type=NotificationType.MORNING_MESSAGE.value, status=NotificationStatus.PENDING.value),
        )
        if pending:
            return None

        zone = self._zone(user)
        today = local_date_of(now, zone)
        try:
            target = local_time_to_utc(today, user.preferred_time, zone)
            if target <= now:
                target = local_time_to_utc(today + timedelta(days=1), user.preferred_time, zone)
        except ValueError:
            logger.warning(f"User {user.id} has an invalid preferred time '{user.preferred_time}', skipping")
            return None

        notification = self.service.create(
            user_id=user.id,
            type=NotificationType.MORNING_MESSAGE.value,
            scheduled_for=target,
            title="Morning briefing",
            tone=MORNING_TONE,
            now=now,
        )
        logger.info(f"Scheduled morning message for user {user.id} at {target.isoformat()}")
        return notification

    def schedule_daily(self, now: Optional[datetime] = None) -> int:
        """
        Plan the current local day for every user with messaging enabled.

        Each user is planned once per user-local day; later calls that day
        are no-ops for that user.

        Returns:
            Number of notifications created
        """
        now = now or utcnow()
        cutoff = now.date() - timedelta(days=2)
        self._planned = {key for key in self._planned if key[1] >= cutoff}
        created = 0
        for user in self.registry.messaging_users():
            local_day = local_date_of(now, self._zone(user))
            key = (user.id, local_day)
            if key in self._planned:
                continue
            try:
                if self.schedule_morning_message(user, now) is not None:
                    created += 1
                for task in self.registry.scheduled_tasks(user.id):
                    created += len(self.schedule_reminders_for_task(task, user, local_day, now))
            except SchedulerError as e:
                logger.error(f"Daily planning failed for user {user.id}: {e.message}")
                continue
            self._planned.add(key)
        if created:
            logger.info(f"Daily planning created {created} notifications")
        return created
