"""
Reference Resolver

Turns a human description of a notification ("the 3pm gym reminder",
"#12", "my morning message") into exactly one notification of the user.

Pattern-based: an explicit id wins outright; otherwise type keywords, a
time of day (read in the user's time zone) and the remaining title words each
narrow the day's pending candidates. Zero survivors is NotFound, more than
one is Ambiguous; the resolver never picks silently.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set, Tuple
import logging
import re

from coach_app.errors import AmbiguousReferenceError, InvalidScheduleError, NotFoundError
from coach_app.models.notification import Notification, NotificationType
from coach_app.services.notification_store import PENDING, NotificationStore
from coach_app.services.task_registry import TaskRegistry
from coach_app.utils.time import local_date_of, to_local, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ParsedReference:
    """Discriminators pulled out of a description."""
    raw_text: str
    notification_id: Optional[int] = None
    types: Set[str] = field(default_factory=set)
    time_of_day: Optional[Tuple[int, int]] = None
    words: List[str] = field(default_factory=list)


class ReferenceResolver:
    """Resolve free-text references to a single notification."""

    # Checked in order; each match is cut out of the text before the next pattern runs
    TYPE_PATTERNS = [
        (r'\bpost[- ]?reminder(?:\s+follow[- ]?ups?)?\b', {NotificationType.POST_REMINDER_FOLLOW_UP.value}),
        (r'\bpre[- ]?reminders?\b', {NotificationType.PRE_REMINDER.value}),
        (r'\b(?:morning(?:\s+message)?|briefing)\b', {NotificationType.MORNING_MESSAGE.value}),
        (
            r'\b(?:follow[- ]?ups?|check[- ]?ins?)\b',
            {NotificationType.FOLLOW_UP.value, NotificationType.POST_REMINDER_FOLLOW_UP.value},
        ),
        (r'\breminders?\b', {NotificationType.REMINDER.value}),
    ]

    ID_PATTERNS = [
        r'#\s*(\d+)\b',
        r'^\s*(\d+)\s*$',  # bare id only when it is the whole reference
        r'\b(?:notification|id)\s+(\d+)\b',
    ]

    TIME_PATTERNS = [
        r'\b(\d{1,2}):(\d{2})(?:\s*(am|pm|a\.m\.|p\.m\.)(?!\w))?',
        r'\b(\d{1,2})\s*(am|pm|a\.m\.|p\.m\.)(?!\w)',
        r'\b(noon|midday|midnight)\b',
    ]

    STOPWORDS = {
        "the", "a", "an", "my", "our", "at", "for", "to", "on", "of", "in", "about", "with", "and",
        "this", "that", "one", "today", "tonight", "tomorrow", "message", "messages", "notification",
        "notifications", "please", "scheduled", "from", "me", "it", "is", "o'clock", "oclock",
    }

    def __init__(self, store: NotificationStore, registry: Optional[TaskRegistry] = None, default_time_zone: str = "UTC"):
        self.store = store
        self.index = store.index
        self.registry = registry
        self.default_time_zone = default_time_zone

    def parse(self, description: str) -> ParsedReference:
        """
        Split a description into id, type, time-of-day and word discriminators.

        Args:
            description: Free text from the user or the interpreter

        Returns:
            ParsedReference
        """
        parsed = ParsedReference(raw_text=description)
        text = description.lower().strip()

        for pattern in self.ID_PATTERNS:
            match = re.search(pattern, text)
            if match:
                parsed.notification_id = int(match.group(1))
                return parsed

        for pattern in self.TIME_PATTERNS:
            match = re.search(pattern, text)
            if match:
                parsed.time_of_day = self._parse_time(match)
                text = text[:match.start()] + " " + text[match.end():]
                break

        for pattern, types in self.TYPE_PATTERNS:
            if re.search(pattern, text):
                parsed.types.update(types)
                text = re.sub(pattern, " ", text)

        parsed.words = [
            word for word in re.findall(r"[a-z0-9']+", text)
            if word not in self.STOPWORDS and len(word) > 1
        ]
        return parsed

    def resolve(
        self,
        user_id: str,
        description: str,
        on_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """
        Resolve ``description`` among the user's pending notifications on ``on_date``.

        Raises:
            InvalidScheduleError: empty description
            NotFoundError: nothing matches
            AmbiguousReferenceError: several notifications match
        """
        if not description or not description.strip():
            raise InvalidScheduleError("A reference description is required", {"field": "description"})

        parsed = self.parse(description)
        zone = self.zone_for(user_id)

        if parsed.notification_id is not None:
            return self._direct(user_id, parsed.notification_id)

        day = on_date or local_date_of(now or utcnow(), zone)
        candidates = self.store.get_many(self.index.for_date(user_id, day, zone), status=PENDING)

        if parsed.types:
            candidates = [n for n in candidates if n.type in parsed.types]
        if parsed.time_of_day is not None:
            candidates = [n for n in candidates if self._local_hm(n, zone) == parsed.time_of_day]
        if parsed.words:
            candidates = [n for n in candidates if self._mentions_all(n, parsed.words)]

        if not candidates:
            logger.info(f"Reference '{description}' matched nothing for user {user_id} on {day}")
            raise NotFoundError(
                f"No pending notification matches '{description}' on {day.isoformat()}",
                {"description": description, "date": day.isoformat()},
            )
        if len(candidates) > 1:
            logger.info(f"Reference '{description}' is ambiguous for user {user_id}: {len(candidates)} matches")
            raise AmbiguousReferenceError(
                f"'{description}' matches {len(candidates)} notifications; please be more specific",
                [self.describe(n, zone) for n in candidates],
            )
        return candidates[0]

    def describe(self, notification: Notification, zone: Optional[str] = None) -> Dict[str, Any]:
        """Short candidate summary shown to the user when a reference is ambiguous."""
        zone = zone or self.zone_for(notification.user_id)
        return {
            "id": notification.id,
            "type": notification.type,
            "title": notification.title,
            "scheduled_for": notification.scheduled_for.isoformat() + "Z",
            "local_time": to_local(notification.scheduled_for, zone).strftime("%H:%M"),
            "status": notification.status,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _direct(self, user_id: str, notification_id: int) -> Notification:
        notification = self.store.get_active(notification_id)
        if notification.user_id != user_id:
            # Other users' notifications are indistinguishable from missing ones
            raise NotFoundError(f"Notification {notification_id} not found", {"id": notification_id})
        return notification

    def zone_for(self, user_id: str) -> str:
        if self.registry is None:
            return self.default_time_zone
        return self.registry.user_time_zone(user_id, self.default_time_zone)

    @staticmethod
    def _local_hm(notification: Notification, zone: str) -> Tuple[int, int]:
        local = to_local(notification.scheduled_for, zone)
        return local.hour, local.minute

    def _mentions_all(self, notification: Notification, words: List[str]) -> bool:
        haystack = " ".join(filter(None, [notification.title, notification.content])).lower()
        if notification.task_id is not None and self.registry is not None:
            task = self.registry.lookup(notification.task_id)
            if task is not None:
                haystack += " " + task.title.lower()
        return all(word in haystack for word in words)

    @staticmethod
    def _parse_time(match) -> Tuple[int, int]:
        groups = match.groups()
        if groups[0] in ("noon", "midday"):
            return 12, 0
        if groups[0] == "midnight":
            return 0, 0

        hour = int(groups[0])
        if len(groups) == 3:
            minute = int(groups[1])
            meridiem = groups[2]
        else:
            minute = 0
            meridiem = groups[1]

        if meridiem:
            meridiem = meridiem.replace(".", "")
            if not 1 <= hour <= 12:
                raise InvalidScheduleError(f"Invalid time of day: {match.group(0)}", {"time": match.group(0)})
            if meridiem == "pm" and hour != 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise InvalidScheduleError(f"Invalid time of day: {match.group(0)}", {"time": match.group(0)})
        return hour, minute
