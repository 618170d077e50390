import asyncio
from datetime import timedelta

import httpx
from sqlmodel import Session, select

from coach_app.models import Notification
from coach_app.providers.base_provider import DeliveryResult
from coach_app.providers.gateway import DeliveryGateway
from coach_app.providers.webhook_provider import WebhookProvider
from coach_app.services.dispatcher import backoff_seconds, render_text
from coach_app.services.subsystem import build_subsystem

from tests.conftest import NOW, RecordingProvider, add_task, schedule


def tick(subsystem, now):
    return asyncio.run(subsystem.dispatcher.tick(now=now))


def test_backoff_doubles_and_caps():
    assert [backoff_seconds(n) for n in (1, 2, 3, 4, 5, 6)] == [60, 120, 240, 480, 960, 1800]
    assert backoff_seconds(10) == 1800


def test_render_text_leaves_unknown_placeholders():
    assert render_text("{user_name} / {mood}", {"user_name": "Ada"}) == "Ada / {mood}"


def test_due_notification_is_sent_once(subsystem, provider, user):
    notification = schedule(subsystem, minutes=5)

    early = tick(subsystem, NOW + timedelta(minutes=4))
    assert early.claimed == 0
    assert provider.calls == []

    due_at = NOW + timedelta(minutes=5)
    report = tick(subsystem, due_at)
    assert report.sent == [notification.id]

    sent = subsystem.store.get(notification.id)
    assert sent.status == "sent"
    assert sent.sent_at == due_at
    assert sent.claimed_at is None
    assert sent.provider_message_id == "msg-1"
    assert notification.id not in subsystem.index

    again = tick(subsystem, due_at + timedelta(minutes=1))
    assert again.claimed == 0
    assert len(provider.calls) == 1
    assert subsystem.metrics.get("notifications_sent_total") == 1


def test_concurrent_ticks_share_one_delivery(subsystem, provider):
    notification = schedule(subsystem, minutes=1)
    due_at = NOW + timedelta(minutes=1)

    async def race():
        return await asyncio.gather(
            subsystem.dispatcher.tick(now=due_at),
            subsystem.dispatcher.tick(now=due_at),
        )

    reports = asyncio.run(race())
    assert sum(len(r.sent) for r in reports) == 1
    assert len(provider.calls) == 1
    assert subsystem.store.get(notification.id).status == "sent"


def test_two_processes_never_double_deliver(engine, settings):
    first_provider, second_provider = RecordingProvider(), RecordingProvider()
    first = build_subsystem(engine, settings, gateway=DeliveryGateway([first_provider]))
    second = build_subsystem(engine, settings, gateway=DeliveryGateway([second_provider]))

    ids = [schedule(first, minutes=1, title=f"n{i}").id for i in range(5)]
    second.load_index()
    due_at = NOW + timedelta(minutes=1)

    async def race():
        return await asyncio.gather(first.dispatcher.tick(now=due_at), second.dispatcher.tick(now=due_at))

    reports = asyncio.run(race())
    delivered = [call.notification_id for call in first_provider.calls + second_provider.calls]
    assert sorted(delivered) == sorted(ids)
    assert sum(r.claims_lost for r in reports) == 5

    with Session(engine) as session:
        statuses = {n.status for n in session.exec(select(Notification)).all()}
    assert statuses == {"sent"}


def test_failures_retry_with_backoff_then_fail(subsystem, provider):
    provider.outcomes = [DeliveryResult.failure("bounced")] * 4
    notification = schedule(subsystem, minutes=0)

    now = NOW
    for attempt, delay in enumerate((60, 120, 240), start=1):
        report = tick(subsystem, now)
        assert report.retried == [notification.id]
        row = subsystem.store.get(notification.id)
        assert row.status == "pending"
        assert row.retry_count == attempt
        assert row.scheduled_for == now + timedelta(seconds=delay)
        now = row.scheduled_for

    report = tick(subsystem, now)
    assert report.failed == [notification.id]
    row = subsystem.store.get(notification.id)
    assert row.status == "failed"
    assert row.sent_at is None
    assert notification.id not in subsystem.index
    assert len(provider.calls) == 4
    assert subsystem.metrics.get("delivery_retries_total") == 3
    assert subsystem.metrics.get("notifications_failed_total") == 1


def test_gateway_exception_counts_as_failed_attempt(subsystem, provider):
    provider.outcomes = [RuntimeError("connection reset")]
    notification = schedule(subsystem, minutes=0)

    report = tick(subsystem, NOW)
    assert report.retried == [notification.id]
    assert subsystem.store.get(notification.id).retry_count == 1


def test_unknown_channel_is_a_failure(subsystem):
    notification = schedule(subsystem, minutes=0, channel="webhook")
    report = tick(subsystem, NOW)
    assert report.retried == [notification.id]


def test_timeout_keeps_claim_until_stale_recovery(subsystem, provider):
    provider.delay = 1.0
    notification = schedule(subsystem, minutes=0)

    report = tick(subsystem, NOW)
    assert report.timed_out == [notification.id]
    row = subsystem.store.get(notification.id)
    assert row.status == "delivering"
    assert row.retry_count == 1
    assert row.claimed_at == NOW

    # Not stale yet
    assert tick(subsystem, NOW + timedelta(seconds=200)).released == 0

    provider.delay = 0.0
    report = tick(subsystem, NOW + timedelta(seconds=301))
    assert report.released == 1
    assert report.sent == [notification.id]
    assert subsystem.store.get(notification.id).status == "sent"
    assert subsystem.metrics.get("stale_claims_released_total") == 1


def test_cancel_during_delivery_discards_result(subsystem, provider):
    notification = schedule(subsystem, minutes=0)
    provider.on_send = lambda message: subsystem.service.cancel(message.notification_id, now=NOW)

    report = tick(subsystem, NOW)
    assert report.discarded == [notification.id]
    row = subsystem.store.get(notification.id)
    assert row.status == "cancelled"
    assert row.sent_at is None
    assert subsystem.metrics.get("deliveries_discarded_total") == 1


def test_delete_during_delivery_discards_result(subsystem, provider):
    notification = schedule(subsystem, minutes=0)
    provider.on_send = lambda message: subsystem.service.delete(message.notification_id, now=NOW)

    report = tick(subsystem, NOW)
    assert report.discarded == [notification.id]
    row = subsystem.store.get(notification.id)
    assert row.deleted_at is not None
    assert row.status == "delivering"
    assert row.sent_at is None

    # Deleted rows are never picked up again
    assert tick(subsystem, NOW + timedelta(hours=1)).released == 0


def test_receipt_confirms_pending_delivery(subsystem, provider):
    provider.outcomes = [DeliveryResult(ok=True, provider_message_id="ext-9", pending_confirmation=True)]
    notification = schedule(subsystem, minutes=0)

    report = tick(subsystem, NOW)
    assert report.awaiting_confirmation == [notification.id]
    assert subsystem.store.get(notification.id).status == "delivering"

    confirmed = subsystem.dispatcher.confirm_delivery(notification.id, True, "ext-9", now=NOW + timedelta(seconds=20))
    assert confirmed.status == "sent"
    assert confirmed.sent_at == NOW + timedelta(seconds=20)
    assert confirmed.provider_message_id == "ext-9"

    # A second receipt changes nothing
    assert subsystem.dispatcher.confirm_delivery(notification.id, False, error="late") is None


def test_negative_receipt_schedules_retry(subsystem, provider):
    provider.outcomes = [DeliveryResult(ok=True, pending_confirmation=True)]
    notification = schedule(subsystem, minutes=0)
    tick(subsystem, NOW)

    later = NOW + timedelta(seconds=30)
    retried = subsystem.dispatcher.confirm_delivery(notification.id, False, error="undeliverable", now=later)
    assert retried.status == "pending"
    assert retried.retry_count == 1
    assert retried.scheduled_for == later + timedelta(seconds=60)
    assert notification.id in subsystem.index


def test_render_fills_placeholders(subsystem, engine, user):
    task = add_task(engine, "user-1", "Morning run", "07:30")
    notification = schedule(
        subsystem,
        content="{user_name}, time for {task_title}! {mystery}",
        metadata={"task_id": task.id},
    )
    message = subsystem.dispatcher.render(notification)
    assert message.body == "Ada, time for Morning run! {mystery}"
    assert message.recipient is None


def test_render_falls_back_when_task_is_gone(subsystem, engine, user):
    task = add_task(engine, "user-1", "Gym", deleted_at=NOW)
    notification = schedule(subsystem, type="reminder", title="Leg day", metadata={"task_id": task.id})
    message = subsystem.dispatcher.render(notification)
    assert message.body == "It's time for Leg day."


def test_render_webhook_recipient_from_user(subsystem, engine):
    from coach_app.models import User

    with Session(engine) as session:
        session.add(User(id="user-3", email="hook@example.com", name="Hook", webhook_url="https://chat.example.com/h"))
        session.commit()
    notification = schedule(subsystem, user_id="user-3", channel="webhook", title="Standup")
    message = subsystem.dispatcher.render(notification)
    assert message.recipient == "https://chat.example.com/h"
    assert message.title == "Standup"


def test_run_loop_delivers_and_stops(subsystem, provider):
    subsystem.settings.tick_interval_seconds = 0.01
    notification = schedule(subsystem, minutes=0)

    async def run_briefly():
        subsystem.dispatcher.start()
        await asyncio.sleep(0.1)
        assert subsystem.dispatcher.is_running
        await subsystem.dispatcher.stop()

    asyncio.run(run_briefly())
    assert not subsystem.dispatcher.is_running
    assert subsystem.store.get(notification.id).status == "sent"
    assert len(provider.calls) == 1


def test_webhook_reply_without_json_body_is_not_resent(engine, settings):
    posts = []

    def handler(request):
        posts.append(request)
        return httpx.Response(200, headers={"content-type": "application/json"}, content=b"ok")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    webhook = WebhookProvider({"webhook_url": "https://chat.example.com/hook"}, client=client)
    subsystem = build_subsystem(engine, settings, gateway=DeliveryGateway([webhook]))
    notification = schedule(subsystem, minutes=0, channel="webhook", title="Standup")

    first = tick(subsystem, NOW)
    second = tick(subsystem, NOW + timedelta(minutes=5))

    assert first.sent == [notification.id]
    assert second.claimed == 0
    assert len(posts) == 1
    assert subsystem.store.get(notification.id).status == "sent"
