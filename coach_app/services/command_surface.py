"""
Command Surface

Intent-shaped operations for the natural-language interpreter and the REST
API. Everything that changes state goes through ScheduleService; everything
"by reference" goes through ReferenceResolver first.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
import logging

from coach_app.models.notification import Notification
from coach_app.schemas.notification import NotificationMetadata
from coach_app.services.notification_store import PENDING, NotificationFilter, NotificationStore
from coach_app.services.reference_resolver import ReferenceResolver
from coach_app.services.schedule_service import ScheduleService
from coach_app.utils.time import local_date_of, local_day_bounds, utcnow

logger = logging.getLogger(__name__)


class CommandSurface:
    """Operations the interpreter can call on a user's behalf."""

    def __init__(self, service: ScheduleService, store: NotificationStore, resolver: ReferenceResolver):
        self.service = service
        self.store = store
        self.resolver = resolver

    def user_today(self, user_id: str, now: Optional[datetime] = None) -> date:
        """The current calendar date in the user's time zone."""
        return local_date_of(now or utcnow(), self.resolver.zone_for(user_id))

    def list_today(
        self,
        user_id: str,
        on_date: Optional[date] = None,
        include_all: bool = False,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        A user's notifications for one local day, ascending by time.

        Only pending ones unless ``include_all``, in which case sent, failed
        and cancelled rows of that day are listed too. Deleted rows never are.
        """
        zone = self.resolver.zone_for(user_id)
        day = on_date or local_date_of(now or utcnow(), zone)
        if not include_all:
            return self.store.get_many(self.store.index.for_date(user_id, day, zone), status=PENDING)
        start, end = local_day_bounds(day, zone)
        return self.store.list_active(user_id, NotificationFilter(start=start, end=end))

    def create_notification(
        self,
        user_id: str,
        type: str,
        content: Optional[str],
        scheduled_for: datetime,
        metadata: Optional[Dict[str, Any]] = None,
        title: str = "",
        tone: Optional[str] = None,
        channel: Optional[str] = None,
        slug: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        parsed_metadata = NotificationMetadata.model_validate(metadata or {})
        return self.service.create(
            user_id=user_id,
            type=type,
            scheduled_for=scheduled_for,
            title=title,
            content=content,
            metadata=parsed_metadata,
            tone=tone,
            channel=channel,
            slug=slug,
            now=now,
        )

    def reschedule_by_reference(
        self,
        user_id: str,
        description: str,
        new_time: datetime,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        target = self.resolver.resolve(user_id, description, on_date, now)
        return self.service.reschedule(target.id, new_time, now=now)

    def snooze_by_reference(
        self,
        user_id: str,
        description: str,
        minutes: int,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        target = self.resolver.resolve(user_id, description, on_date, now)
        return self.service.snooze(target.id, minutes, now=now)

    def cancel_by_reference(
        self,
        user_id: str,
        description: str,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        target = self.resolver.resolve(user_id, description, on_date, now)
        return self.service.cancel(target.id, now=now)

    def duplicate_by_reference(
        self,
        user_id: str,
        description: str,
        scheduled_for: Optional[datetime] = None,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        target = self.resolver.resolve(user_id, description, on_date, now)
        return self.service.duplicate(target.id, scheduled_for=scheduled_for, now=now)

    def delete_by_reference(
        self,
        user_id: str,
        description: str,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        target = self.resolver.resolve(user_id, description, on_date, now)
        return self.service.delete(target.id, now=now)
