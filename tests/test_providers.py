import asyncio
import json

import httpx
import pytest
from sqlmodel import Session, select

from coach_app.errors import DeliveryFailedError
from coach_app.models import InAppMessage
from coach_app.providers.base_provider import RenderedMessage
from coach_app.providers.gateway import DeliveryGateway
from coach_app.providers.in_app_provider import InAppProvider
from coach_app.providers.webhook_provider import WebhookProvider

MESSAGE = RenderedMessage(notification_id=5, user_id="user-1", title="Gym", body="It's time for Gym.")


def webhook_with(handler, **config):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookProvider({"webhook_url": "https://chat.example.com/hook", **config}, client=client)


def test_webhook_posts_message():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "ts": "1700.01"})

    result = asyncio.run(webhook_with(handler).send(MESSAGE))

    assert result.ok is True
    assert result.provider_message_id == "1700.01"
    url, payload = seen[0]
    assert url == "https://chat.example.com/hook"
    assert payload == {"text": "*Gym*\nIt's time for Gym.", "notification_id": 5, "user_id": "user-1"}


def test_webhook_prefers_message_recipient():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(204)

    message = RenderedMessage(5, "user-1", "", "hi", recipient="https://hooks.example.org/personal")
    result = asyncio.run(webhook_with(handler).send(message))
    assert result.ok is True
    assert result.provider_message_id is None
    assert seen == ["https://hooks.example.org/personal"]


def test_webhook_http_error_is_failure():
    result = asyncio.run(webhook_with(lambda request: httpx.Response(500)).send(MESSAGE))
    assert result.ok is False
    assert result.error


def test_webhook_transport_error_is_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = asyncio.run(webhook_with(handler).send(MESSAGE))
    assert result.ok is False
    assert "connection refused" in result.error


def test_webhook_without_url_fails():
    provider = WebhookProvider({"webhook_url": ""})
    result = asyncio.run(provider.send(MESSAGE))
    assert result.ok is False
    assert provider.validate_recipient("ftp://example.com") is False


def test_in_app_provider_writes_inbox(engine):
    result = asyncio.run(InAppProvider(engine).send(MESSAGE))
    assert result.ok is True

    with Session(engine) as session:
        rows = session.exec(select(InAppMessage)).all()
    assert len(rows) == 1
    assert rows[0].content == "It's time for Gym."
    assert rows[0].notification_id == 5
    assert result.provider_message_id == f"in_app_{rows[0].id}"


def test_gateway_routes_by_channel(engine):
    gateway = DeliveryGateway([InAppProvider(engine)])
    assert asyncio.run(gateway.send("in_app", MESSAGE)).ok is True

    with pytest.raises(DeliveryFailedError) as excinfo:
        asyncio.run(gateway.send("sms", MESSAGE))
    assert excinfo.value.details == {"channel": "sms"}
    assert "sms" in excinfo.value.message


def test_webhook_unreadable_reply_still_counts_as_sent():
    def handler(request):
        return httpx.Response(200, headers={"content-type": "application/json"}, content=b"ok")

    result = asyncio.run(webhook_with(handler).send(MESSAGE))
    assert result.ok is True
    assert result.provider_message_id is None
