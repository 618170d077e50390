"""
Notification Store

Durable record of notifications. Owns the soft-delete and timestamp
invariants and is the only writer of the ``notification`` table. Every
status change is a single-row conditional UPDATE: the WHERE clause names the
state the caller expects, and a zero rowcount means a concurrent writer got
there first.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from coach_app.config import Settings
from coach_app.errors import (
    DuplicateKeyError,
    GoneError,
    InvalidScheduleError,
    NotFoundError,
    PersistenceConflictError,
)
from coach_app.models.notification import Notification, NotificationStatus
from coach_app.services.schedule_index import ScheduleIndex
from coach_app.utils.time import utcnow

logger = logging.getLogger(__name__)

PENDING = NotificationStatus.PENDING.value
DELIVERING = NotificationStatus.DELIVERING.value
SENT = NotificationStatus.SENT.value
FAILED = NotificationStatus.FAILED.value


@dataclass
class NotificationFilter:
    """Optional narrowing for ``list_active``; ``end`` is exclusive."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    type: Optional[str] = None
    status: Optional[str] = None
    task_id: Optional[int] = None
    types: Optional[Sequence[str]] = None
    message_schedules_only: bool = False


class NotificationStore:
    """SQLModel-backed store that republishes every write into the schedule index."""

    def __init__(self, engine: Engine, index: ScheduleIndex, settings: Settings):
        self.engine = engine
        self.index = index
        self.settings = settings

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def _publish(self, notification: Notification) -> None:
        active = notification.status == PENDING and notification.deleted_at is None
        self.index.upsert(
            notification.id,
            notification.user_id,
            notification.scheduled_for,
            active=active,
            version=notification.version,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, notification_id: int) -> Notification:
        """Fetch a row, soft-deleted ones included."""
        with self._session() as session:
            notification = session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found", {"id": notification_id})
        return notification

    def get_active(self, notification_id: int) -> Notification:
        """Fetch a row that must not be soft-deleted."""
        notification = self.get(notification_id)
        if notification.deleted_at is not None:
            raise GoneError(f"Notification {notification_id} has been deleted", {"id": notification_id})
        return notification

    def get_many(self, notification_ids: Sequence[int], status: Optional[str] = None) -> List[Notification]:
        """Live rows for the given ids, in the order the ids were given."""
        if not notification_ids:
            return []
        with self._session() as session:
            statement = select(Notification).where(
                col(Notification.id).in_(list(notification_ids)),
                col(Notification.deleted_at).is_(None),
            )
            if status is not None:
                statement = statement.where(Notification.status == status)
            rows = {row.id: row for row in session.exec(statement).all()}
        return [rows[notification_id] for notification_id in notification_ids if notification_id in rows]

    def list_active(self, user_id: str, filters: Optional[NotificationFilter] = None) -> List[Notification]:
        """Non-deleted notifications of a user, ascending by ``(scheduled_for, id)``."""
        filters = filters or NotificationFilter()
        statement = select(Notification).where(
            Notification.user_id == user_id,
            col(Notification.deleted_at).is_(None),
        )
        if filters.start is not None:
            statement = statement.where(Notification.scheduled_for >= filters.start)
        if filters.end is not None:
            statement = statement.where(Notification.scheduled_for < filters.end)
        if filters.type:
            statement = statement.where(Notification.type == filters.type)
        if filters.types:
            statement = statement.where(col(Notification.type).in_(list(filters.types)))
        if filters.status:
            statement = statement.where(Notification.status == filters.status)
        if filters.task_id is not None:
            statement = statement.where(Notification.task_id == filters.task_id)
        if filters.message_schedules_only:
            statement = statement.where(col(Notification.tone).is_not(None))
        statement = statement.order_by(col(Notification.scheduled_for).asc(), col(Notification.id).asc())

        with self._session() as session:
            return list(session.exec(statement).all())

    def slug_in_use(self, user_id: str, slug: str, exclude_id: Optional[int] = None) -> bool:
        """Whether a live notification of the user already holds ``slug``."""
        statement = select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.slug == slug,
            col(Notification.deleted_at).is_(None),
        )
        if exclude_id is not None:
            statement = statement.where(Notification.id != exclude_id)
        with self._session() as session:
            return session.exec(statement).first() is not None

    def pending_entries(self) -> List[Tuple[int, str, datetime, int]]:
        """``(id, user_id, scheduled_for, version)`` of every live pending row, for index rebuilds."""
        statement = select(
            Notification.id, Notification.user_id, Notification.scheduled_for, Notification.version
        ).where(
            Notification.status == PENDING,
            col(Notification.deleted_at).is_(None),
        )
        with self._session() as session:
            return [(row[0], row[1], row[2], row[3]) for row in session.exec(statement).all()]

    def stale_claims(self, claimed_before: datetime) -> List[Notification]:
        """Live rows stuck in ``delivering`` since before ``claimed_before``."""
        statement = select(Notification).where(
            Notification.status == DELIVERING,
            col(Notification.deleted_at).is_(None),
            col(Notification.claimed_at) < claimed_before,
        ).order_by(col(Notification.id).asc())
        with self._session() as session:
            return list(session.exec(statement).all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, draft: Notification, now: Optional[datetime] = None) -> Notification:
        """Persist a new pending notification."""
        now = now or utcnow()
        grace = timedelta(seconds=self.settings.creation_grace_seconds)
        if draft.scheduled_for < now - grace:
            raise InvalidScheduleError(
                "Cannot schedule a notification in the past",
                {"scheduled_for": draft.scheduled_for.isoformat(), "now": now.isoformat()},
            )
        if draft.slug and self.slug_in_use(draft.user_id, draft.slug):
            raise DuplicateKeyError(
                f"Slug '{draft.slug}' is already in use",
                {"field": "slug", "slug": draft.slug},
            )

        draft.status = PENDING
        draft.sent_at = None
        draft.claimed_at = None
        draft.deleted_at = None
        draft.version = 1
        draft.created_at = now
        draft.updated_at = now

        with self._session() as session:
            session.add(draft)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.warning(f"Create rejected by unique index for user {draft.user_id}: {str(e.orig)}")
                raise DuplicateKeyError(
                    f"Slug '{draft.slug}' is already in use",
                    {"field": "slug", "slug": draft.slug},
                ) from e
            session.refresh(draft)

        self._publish(draft)
        logger.info(
            f"Created notification {draft.id} ({draft.type}) for user {draft.user_id} at {draft.scheduled_for.isoformat()}"
        )
        return draft

    def update(
        self,
        notification_id: int,
        patch: Dict[str, Any],
        expected_status: Optional[Iterable[str]] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """
        Compare-and-swap update of a live row.

        Raises:
            NotFoundError: no such row
            GoneError: the row is soft-deleted
            PersistenceConflictError: status or version moved under the caller
        """
        current = self.get_active(notification_id)
        version = expected_version if expected_version is not None else current.version
        conditions = [Notification.version == version]
        if expected_status is not None:
            conditions.append(col(Notification.status).in_(list(expected_status)))

        updated = self._conditional_update(notification_id, conditions, patch, now or utcnow())
        if updated is None:
            raise PersistenceConflictError(
                f"Notification {notification_id} changed concurrently",
                {"id": notification_id, "expected_version": version},
            )
        return updated

    def transition(
        self,
        notification_id: int,
        from_statuses: Iterable[str],
        values: Dict[str, Any],
        now: Optional[datetime] = None,
        extra_conditions: Sequence[Any] = (),
    ) -> Optional[Notification]:
        """
        Move a live row out of one of ``from_statuses``.

        Returns the updated row, or None when the row was not in an expected
        state (lost race, cancelled, deleted).
        """
        conditions = [col(Notification.status).in_(list(from_statuses))]
        conditions.extend(extra_conditions)
        return self._conditional_update(notification_id, conditions, values, now or utcnow())

    def claim(self, notification_id: int, now: Optional[datetime] = None) -> Optional[Notification]:
        """``pending -> delivering`` for a due row; None if another claimant won."""
        now = now or utcnow()
        return self.transition(
            notification_id,
            (PENDING,),
            {"status": DELIVERING, "claimed_at": now},
            now=now,
            extra_conditions=(col(Notification.scheduled_for) <= now,),
        )

    def finalize_sent(
        self,
        notification_id: int,
        now: Optional[datetime] = None,
        provider_message_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """``delivering -> sent``; None when the row was cancelled or deleted while in flight."""
        now = now or utcnow()
        values: Dict[str, Any] = {"status": SENT, "sent_at": now, "claimed_at": None}
        if provider_message_id:
            values["provider_message_id"] = provider_message_id
        return self.transition(notification_id, (DELIVERING,), values, now=now)

    def finalize_failure(
        self,
        notification_id: int,
        retry_count: int,
        retry_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Record a failed attempt of a claimed row.

        With ``retry_at`` the row goes back to ``pending`` at that instant,
        otherwise it is ``failed`` for good.
        """
        if retry_at is not None:
            values: Dict[str, Any] = {
                "status": PENDING,
                "scheduled_for": retry_at,
                "retry_count": retry_count,
                "claimed_at": None,
            }
        else:
            values = {"status": FAILED, "retry_count": retry_count, "claimed_at": None}
        return self.transition(notification_id, (DELIVERING,), values, now=now)

    def record_attempt(self, notification_id: int, retry_count: int, now: Optional[datetime] = None) -> Optional[Notification]:
        """Count an unconfirmed attempt while the row stays claimed."""
        return self.transition(notification_id, (DELIVERING,), {"retry_count": retry_count}, now=now)

    def release_stale_claims(self, claimed_before: datetime, max_retries: int, now: Optional[datetime] = None) -> List[Notification]:
        """
        Free rows claimed before ``claimed_before`` by a dispatcher that never reported back.

        Rows still inside the retry budget return to ``pending`` (and are due
        right away); the rest become ``failed``.
        """
        now = now or utcnow()
        released = []
        for stale in self.stale_claims(claimed_before):
            if stale.retry_count <= max_retries:
                values: Dict[str, Any] = {"status": PENDING, "claimed_at": None}
            else:
                values = {"status": FAILED, "claimed_at": None}
            row = self.transition(
                stale.id,
                (DELIVERING,),
                values,
                now=now,
                extra_conditions=(col(Notification.claimed_at) < claimed_before,),
            )
            if row is not None:
                logger.warning(f"Released stale claim on notification {row.id} as {row.status}")
                released.append(row)
        return released

    def soft_delete(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        """Set ``deleted_at``; deleting twice returns the already-deleted row."""
        now = now or utcnow()
        current = self.get(notification_id)
        if current.deleted_at is None:
            with self._session() as session:
                statement = (
                    update(Notification)
                    .where(Notification.id == notification_id, col(Notification.deleted_at).is_(None))
                    .values(deleted_at=now, updated_at=now, version=Notification.version + 1)
                )
                session.exec(statement)
                session.commit()
            current = self.get(notification_id)
            logger.info(f"Soft-deleted notification {notification_id} (status frozen at {current.status})")
        self.index.remove(notification_id, version=current.version)
        return current

    def _conditional_update(
        self,
        notification_id: int,
        conditions: Sequence[Any],
        values: Dict[str, Any],
        now: datetime,
    ) -> Optional[Notification]:
        values = dict(values)
        values["updated_at"] = now
        values["version"] = Notification.version + 1
        statement = (
            update(Notification)
            .where(
                Notification.id == notification_id,
                col(Notification.deleted_at).is_(None),
                *conditions,
            )
            .values(**values)
        )
        with self._session() as session:
            try:
                result = session.exec(statement)
                if result.rowcount != 1:
                    session.rollback()
                    return None
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateKeyError(
                    f"Update of notification {notification_id} violates a table constraint",
                    {"id": notification_id},
                ) from e
            notification = session.get(Notification, notification_id)
            session.refresh(notification)

        self._publish(notification)
        return notification
