"""
Notification Dispatcher

Periodic tick that turns due, pending notifications into deliveries:

    pending -> delivering -> sent | failed | pending (retry) | cancelled

The claim (``pending -> delivering``) is a conditional single-row update, so
two ticks, in this process or another one, never deliver the same
notification twice. Every outcome is written back only while the row is
still ``delivering`` and not soft-deleted; anything else means the user
cancelled or deleted it mid-flight and the result is discarded.
"""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from coach_app.config import Settings
from coach_app.errors import DeliveryFailedError
from coach_app.models.notification import Notification, NotificationStatus, NotificationType
from coach_app.providers.base_provider import DeliveryResult, RenderedMessage
from coach_app.providers.gateway import DeliveryGateway
from coach_app.services.notification_store import NotificationStore
from coach_app.services.task_registry import TaskRegistry
from coach_app.utils.logger import get_logger
from coach_app.utils.metrics import MetricsCollector
from coach_app.utils.time import utcnow

logger = get_logger("notification-dispatcher")

DEFAULT_TEMPLATES: Dict[str, str] = {
    NotificationType.MORNING_MESSAGE.value: "Good morning {user_name}! Here is what is on your plate today.",
    NotificationType.PRE_REMINDER.value: "Heads up {user_name}: {task_title} is coming up soon.",
    NotificationType.REMINDER.value: "It's time for {task_title}.",
    NotificationType.POST_REMINDER_FOLLOW_UP.value: "How did {task_title} go, {user_name}?",
    NotificationType.FOLLOW_UP.value: "Checking in on {title}.",
}

_PLACEHOLDER = re.compile(r"\{(task_title|user_name|title)\}")


@dataclass
class TickReport:
    """What a single tick did."""
    released: int = 0
    claimed: int = 0
    sent: List[int] = field(default_factory=list)
    retried: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    timed_out: List[int] = field(default_factory=list)
    awaiting_confirmation: List[int] = field(default_factory=list)
    discarded: List[int] = field(default_factory=list)
    claims_lost: int = 0


def backoff_seconds(attempt: int, base: int = 60, cap: int = 1800) -> int:
    """Delay before retry number ``attempt`` (1-based): base * 2^(attempt-1), capped."""
    return min(base * (2 ** (attempt - 1)), cap)


def render_text(template: str, values: Dict[str, str]) -> str:
    """Fill the known placeholders; any other braces are left as written."""
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), template)


class NotificationDispatcher:
    """Claims due notifications, hands them to the delivery gateway and records outcomes."""

    def __init__(
        self,
        store: NotificationStore,
        registry: TaskRegistry,
        gateway: DeliveryGateway,
        settings: Settings,
        metrics: Optional[MetricsCollector] = None,
        event_publisher=None,
        planner=None,
    ):
        self.store = store
        self.index = store.index
        self.registry = registry
        self.gateway = gateway
        self.settings = settings
        self.metrics = metrics or MetricsCollector()
        self.events = event_publisher
        self.planner = planner

        self._ticks = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Run one dispatch pass for instant ``now``."""
        now = now or utcnow()
        report = TickReport()
        self._ticks += 1
        self.metrics.tick()

        if self.settings.index_resync_ticks > 0 and self._ticks % self.settings.index_resync_ticks == 0:
            self.resync_index()

        report.released = len(self.recover_stale_claims(now))

        due = self.index.due_before(now)
        if due:
            logger.debug("Due notifications found", count=len(due), now=now)

        for notification_id in due:
            claimed = self.store.claim(notification_id, now)
            if claimed is None:
                # Another dispatcher, a cancel or a delete got there first; resync tidies the index
                report.claims_lost += 1
                self.metrics.claim_lost()
                continue
            report.claimed += 1
            await self._deliver(claimed, now, report)

        return report

    async def _deliver(self, notification: Notification, now: datetime, report: TickReport) -> None:
        message = self.render(notification)
        try:
            with self.metrics.time_operation("delivery_seconds"):
                result = await asyncio.wait_for(
                    self.gateway.send(notification.channel, message),
                    timeout=self.settings.delivery_timeout_seconds,
                )
        except asyncio.TimeoutError:
            self._record_timeout(notification, now, report)
            return
        except DeliveryFailedError as e:
            logger.warning(
                "Delivery rejected by gateway",
                notification_id=notification.id,
                channel=notification.channel,
                error=e.message,
            )
            result = DeliveryResult.failure(e.message)
        except Exception as e:
            logger.exception(
                "Delivery gateway raised",
                notification_id=notification.id,
                channel=notification.channel,
                error=str(e),
            )
            result = DeliveryResult.failure(str(e) or e.__class__.__name__)

        if result.ok and result.pending_confirmation:
            # Same bookkeeping as a timeout: the attempt counts, the claim is kept
            held = self.store.record_attempt(notification.id, notification.retry_count + 1, now)
            if held is None:
                self._discard(notification.id, "accepted")
                report.discarded.append(notification.id)
                return
            logger.info(
                "Delivery accepted, awaiting receipt",
                notification_id=notification.id,
                provider_message_id=result.provider_message_id,
            )
            report.awaiting_confirmation.append(notification.id)
            return

        outcome = self._apply_result(notification, result, now)
        getattr(report, outcome).append(notification.id)

    def _apply_result(
        self,
        notification: Notification,
        result: DeliveryResult,
        now: datetime,
        attempt: Optional[int] = None,
    ) -> str:
        """Write a final result back; returns the TickReport bucket it falls into."""
        if result.ok:
            sent = self.store.finalize_sent(notification.id, now, result.provider_message_id)
            if sent is None:
                self._discard(notification.id, "sent")
                return "discarded"
            self.metrics.notification_sent()
            logger.info(
                "Notification sent",
                notification_id=sent.id,
                user_id=sent.user_id,
                type=sent.type,
                channel=sent.channel,
                provider_message_id=sent.provider_message_id,
            )
            self._publish_event("notification.sent", sent)
            return "sent"

        if attempt is None:
            attempt = notification.retry_count + 1
        if attempt <= self.settings.max_retries:
            retry_at = now + timedelta(
                seconds=backoff_seconds(attempt, self.settings.backoff_base_seconds, self.settings.backoff_cap_seconds)
            )
            retried = self.store.finalize_failure(notification.id, attempt, retry_at, now)
            if retried is None:
                self._discard(notification.id, "retry")
                return "discarded"
            self.metrics.retry_scheduled()
            logger.warning(
                "Delivery failed, retry scheduled",
                notification_id=notification.id,
                attempt=attempt,
                retry_at=retry_at,
                error=result.error,
            )
            return "retried"

        failed = self.store.finalize_failure(notification.id, attempt, None, now)
        if failed is None:
            self._discard(notification.id, "failed")
            return "discarded"
        self.metrics.notification_failed()
        logger.error(
            "Delivery failed, retries exhausted",
            notification_id=notification.id,
            attempts=attempt,
            error=result.error,
        )
        self._publish_event("notification.failed", failed)
        return "failed"

    def _record_timeout(self, notification: Notification, now: datetime, report: TickReport) -> None:
        # The message may have gone out: keep the claim, count the attempt
        attempt = notification.retry_count + 1
        self.metrics.delivery_timed_out()
        updated = self.store.record_attempt(notification.id, attempt, now)
        if updated is None:
            self._discard(notification.id, "timeout")
            report.discarded.append(notification.id)
            return
        logger.warning(
            "Delivery timed out, holding claim until receipt or stale recovery",
            notification_id=notification.id,
            attempt=attempt,
            timeout_seconds=self.settings.delivery_timeout_seconds,
        )
        report.timed_out.append(notification.id)

    def _discard(self, notification_id: int, outcome: str) -> None:
        self.metrics.delivery_discarded()
        logger.info(
            "Delivery result discarded, notification was cancelled or deleted in flight",
            notification_id=notification_id,
            outcome=outcome,
        )

    # ------------------------------------------------------------------
    # Receipts, recovery, index upkeep
    # ------------------------------------------------------------------

    def confirm_delivery(
        self,
        notification_id: int,
        ok: bool,
        provider_message_id: Optional[str] = None,
        error: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Apply an asynchronous delivery receipt.

        Returns the updated notification, or None when it is no longer
        ``delivering`` (already finalized, cancelled or deleted).
        """
        now = now or utcnow()
        current = self.store.get(notification_id)
        if current.deleted_at is not None or current.status != NotificationStatus.DELIVERING.value:
            logger.info(
                "Receipt ignored, notification not in flight",
                notification_id=notification_id,
                status=current.status,
                deleted=current.deleted_at is not None,
            )
            return None

        result = DeliveryResult(ok=ok, provider_message_id=provider_message_id, error=error)
        # The attempt was counted when the claim was kept past its tick
        outcome = self._apply_result(current, result, now, attempt=max(current.retry_count, 1))
        if outcome == "discarded":
            return None
        return self.store.get(notification_id)

    def recover_stale_claims(self, now: Optional[datetime] = None) -> List[Notification]:
        """Release claims older than the stale-claim window."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.settings.stale_claim_seconds)
        released = self.store.release_stale_claims(cutoff, self.settings.max_retries, now)
        if released:
            self.metrics.stale_claims_released(len(released))
            for row in released:
                if row.status == NotificationStatus.FAILED.value:
                    self.metrics.notification_failed()
                    self._publish_event("notification.failed", row)
            logger.warning("Stale claims released", count=len(released))
        return released

    def resync_index(self) -> int:
        """Rebuild the in-memory index from the store (picks up other processes' writes)."""
        return self.index.rebuild(self.store.pending_entries())

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, notification: Notification) -> RenderedMessage:
        """Fill ``{task_title}``, ``{user_name}`` and ``{title}`` for delivery."""
        task = self.registry.lookup(notification.task_id)
        user = self.registry.get_user(notification.user_id)
        task_title = task.title if task else notification.title
        values = {
            "task_title": task_title or notification.title or "your task",
            "user_name": (user.name if user and user.name else "there"),
            "title": notification.title or task_title or "",
        }
        template = notification.content or DEFAULT_TEMPLATES.get(notification.type, "{title}")
        recipient = None
        if notification.channel == "webhook":
            recipient = (user.webhook_url if user else None) or self.settings.webhook_url or None
        return RenderedMessage(
            notification_id=notification.id,
            user_id=notification.user_id,
            title=render_text(notification.title or task_title or "", values),
            body=render_text(template, values),
            recipient=recipient,
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_forever(self) -> None:
        """Tick every ``tick_interval_seconds`` until ``stop()``."""
        self._running = True
        self._stop_event = asyncio.Event()
        self.resync_index()
        logger.info("Dispatcher started", interval_seconds=self.settings.tick_interval_seconds)

        while self._running:
            try:
                now = utcnow()
                if self.planner is not None and self.settings.daily_planning_enabled:
                    self.planner.schedule_daily(now)
                await self.tick(now)
            except Exception as e:
                logger.exception("Dispatcher tick failed", error=str(e))

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.settings.tick_interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Dispatcher stopped", ticks=self._ticks)

    def start(self) -> asyncio.Task:
        """Schedule ``run_forever`` on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def is_running(self) -> bool:
        return self._running

    def _publish_event(self, event_type: str, notification: Notification) -> None:
        if self.events is None:
            return
        self.events.publish_notification_event(event_type, notification)
