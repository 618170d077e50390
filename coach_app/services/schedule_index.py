"""
Schedule Index

In-memory ordering of every live ``pending`` notification by due time. The
dispatcher's due-scan and the per-day queries read it instead of scanning the
whole notification history on every tick.
"""

from bisect import bisect_left, bisect_right, insort
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import sys
import threading

from coach_app.utils.time import local_day_bounds

logger = logging.getLogger(__name__)

_MIN_ID = -1
_MAX_ID = sys.maxsize


class ScheduleIndex:
    """
    Sorted ``(scheduled_for, id)`` entries with an owner lookup.

    Only rows that are pending and not soft-deleted belong here; the
    notification store republishes every row it writes, so sent, cancelled,
    failed, claimed and deleted rows drop out through ``upsert(active=False)``.

    Writers publish after their commit, so two writes to the same row can
    arrive out of order. A publish may carry the row ``version``; the highest
    version seen per id wins and older publishes are ignored, removals
    included.
    """

    def __init__(self):
        self._entries: List[Tuple[datetime, int]] = []
        self._by_id: Dict[int, Tuple[datetime, str]] = {}
        self._versions: Dict[int, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __contains__(self, notification_id: int) -> bool:
        with self._lock:
            return notification_id in self._by_id

    def upsert(
        self,
        notification_id: int,
        user_id: str,
        scheduled_for: datetime,
        active: bool = True,
        version: Optional[int] = None,
    ) -> bool:
        """
        Insert or move an entry; ``active=False`` removes it.

        Returns False when ``version`` is older than one already applied.
        """
        with self._lock:
            if not self._accept(notification_id, version):
                return False
            self._discard(notification_id)
            if active:
                self._by_id[notification_id] = (scheduled_for, user_id)
                insort(self._entries, (scheduled_for, notification_id))
            return True

    def remove(self, notification_id: int, version: Optional[int] = None) -> bool:
        with self._lock:
            if not self._accept(notification_id, version):
                return False
            self._discard(notification_id)
            return True

    def due_before(self, instant: datetime, limit: Optional[int] = None) -> List[int]:
        """Ids due at or before ``instant``, ascending by ``(scheduled_for, id)``."""
        with self._lock:
            end = bisect_right(self._entries, (instant, _MAX_ID))
            due = [notification_id for _, notification_id in self._entries[:end]]
        if limit is not None:
            return due[:limit]
        return due

    def for_date(self, user_id: str, day: date, zone_name: Optional[str] = None) -> List[int]:
        """A user's ids due on ``day`` as seen in their time zone, ascending."""
        start, end = local_day_bounds(day, zone_name)
        return self.between(user_id, start, end)

    def between(self, user_id: str, start: datetime, end: datetime) -> List[int]:
        """A user's ids with ``start <= scheduled_for < end``, ascending."""
        with self._lock:
            lo = bisect_left(self._entries, (start, _MIN_ID))
            hi = bisect_left(self._entries, (end, _MIN_ID))
            return [
                notification_id
                for _, notification_id in self._entries[lo:hi]
                if self._by_id[notification_id][1] == user_id
            ]

    def rebuild(self, entries: Iterable[Tuple[int, str, datetime, int]]) -> int:
        """
        Replace the whole index with ``(id, user_id, scheduled_for, version)`` rows.

        A row older than a version already published keeps its current entry:
        that publish came from a commit later than the rebuild's read.
        """
        entries = list(entries)
        with self._lock:
            by_id: Dict[int, Tuple[datetime, str]] = {}
            for notification_id, user_id, scheduled_for, version in entries:
                if version < self._versions.get(notification_id, version):
                    current = self._by_id.get(notification_id)
                    if current is not None:
                        by_id[notification_id] = current
                    continue
                self._versions[notification_id] = version
                by_id[notification_id] = (scheduled_for, user_id)
            self._by_id = by_id
            self._entries = sorted((when, notification_id) for notification_id, (when, _) in by_id.items())
        logger.info(f"Schedule index rebuilt with {len(by_id)} pending entries")
        return len(by_id)

    def _accept(self, notification_id: int, version: Optional[int]) -> bool:
        if version is None:
            return True
        known = self._versions.get(notification_id)
        if known is not None and version < known:
            logger.debug(f"Ignored stale publish of notification {notification_id} (v{version} < v{known})")
            return False
        self._versions[notification_id] = version
        return True

    def _discard(self, notification_id: int) -> None:
        current = self._by_id.pop(notification_id, None)
        if current is None:
            return
        key = (current[0], notification_id)
        position = bisect_left(self._entries, key)
        if position < len(self._entries) and self._entries[position] == key:
            del self._entries[position]
