import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from coach_app.main import create_app
from coach_app.middleware.auth import AUTH_ALGORITHM, AUTH_SECRET
from coach_app.providers.base_provider import DeliveryResult
from coach_app.providers.gateway import DeliveryGateway
from coach_app.utils.time import utcnow

from tests.conftest import NOW, RecordingProvider, schedule


def auth_headers(user_id: str = "user-1") -> dict:
    token = jwt.encode({"sub": user_id, "email": f"{user_id}@example.com"}, AUTH_SECRET, algorithm=AUTH_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def future(hours: int = 24) -> str:
    return (utcnow() + timedelta(hours=hours)).replace(microsecond=0).isoformat() + "Z"


@pytest.fixture
def delivery_provider():
    return RecordingProvider()


@pytest.fixture
def app(engine, settings, delivery_provider):
    return create_app(engine=engine, settings=settings, gateway=DeliveryGateway([delivery_provider]))


@pytest.fixture
def client(app, user):
    with TestClient(app) as test_client:
        yield test_client


def create(client, **body):
    payload = {"type": "reminder", "title": "Gym", "scheduled_for": future()}
    payload.update(body)
    return client.post("/api/user-1/notifications", json=payload, headers=auth_headers())


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["dispatcher_running"] is False


def test_requires_token(client):
    assert client.get("/api/user-1/notifications").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/api/user-1/notifications", headers=bad).status_code == 401


def test_cannot_touch_other_users(client):
    response = client.get("/api/user-2/notifications", headers=auth_headers("user-1"))
    assert response.status_code == 403


def test_create_get_and_list(client):
    response = create(client, metadata={"taskId": 9, "source": "web"}, tone="warm")
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["metadata"]["task_id"] == 9
    assert body["metadata"]["source"] == "web"
    assert body["tone"] == "warm"

    fetched = client.get(f"/api/user-1/notifications/{body['id']}", headers=auth_headers())
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Gym"

    listed = client.get("/api/user-1/notifications", headers=auth_headers()).json()
    assert listed["count"] == 1

    schedules = client.get(
        "/api/user-1/message-schedules",
        params={"date": future()[:10]},
        headers=auth_headers(),
    ).json()
    assert [n["id"] for n in schedules["notifications"]] == [body["id"]]


def test_create_in_past_is_unprocessable(client):
    response = create(client, scheduled_for=(utcnow() - timedelta(hours=1)).isoformat())
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_slug_conflict_and_reuse_after_delete(client):
    first = create(client, slug="launch")
    assert first.status_code == 201
    clash = create(client, slug="launch")
    assert clash.status_code == 409
    assert clash.json()["detail"]["code"] == "CONFLICT"

    deleted = client.delete(f"/api/user-1/notifications/{first.json()['id']}", headers=auth_headers())
    assert deleted.status_code == 204
    again = create(client, slug="launch")
    assert again.status_code == 201
    assert again.json()["slug"] == "launch"


def test_missing_and_deleted_notifications(client):
    assert client.get("/api/user-1/notifications/999", headers=auth_headers()).status_code == 404

    notification_id = create(client).json()["id"]
    client.delete(f"/api/user-1/notifications/{notification_id}", headers=auth_headers())
    gone = client.get(f"/api/user-1/notifications/{notification_id}", headers=auth_headers())
    assert gone.status_code == 410
    assert gone.json()["detail"]["code"] == "GONE"

    # Deleting twice is fine
    repeat = client.delete(f"/api/user-1/notifications/{notification_id}", headers=auth_headers())
    assert repeat.status_code == 204
    snooze = client.post(
        f"/api/user-1/notifications/{notification_id}/snooze", json={"minutes": 10}, headers=auth_headers()
    )
    assert snooze.status_code == 410


def test_reschedule_snooze_cancel_duplicate(client):
    notification_id = create(client).json()["id"]
    base = f"/api/user-1/notifications/{notification_id}"

    moved = client.post(f"{base}/reschedule", json={"scheduled_for": future(30)}, headers=auth_headers())
    assert moved.status_code == 200
    assert moved.json()["metadata"]["rescheduled"] is True

    past = client.post(
        f"{base}/reschedule", json={"scheduled_for": (utcnow() - timedelta(hours=2)).isoformat()}, headers=auth_headers()
    )
    assert past.status_code == 422

    assert client.post(f"{base}/snooze", json={"minutes": 0}, headers=auth_headers()).status_code == 422
    snoozed = client.post(f"{base}/snooze", json={"minutes": 15}, headers=auth_headers())
    assert snoozed.json()["metadata"]["snoozed"] is True

    copy = client.post(f"{base}/duplicate", headers=auth_headers())
    assert copy.status_code == 201
    assert copy.json()["metadata"]["duplicated_from"] == notification_id
    assert copy.json()["scheduled_for"] == snoozed.json()["scheduled_for"]

    cancelled = client.post(f"{base}/cancel", headers=auth_headers())
    assert cancelled.json()["status"] == "cancelled"
    assert client.post(f"{base}/cancel", headers=auth_headers()).json()["status"] == "cancelled"

    conflict = client.post(f"{base}/snooze", json={"minutes": 15}, headers=auth_headers())
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["code"] == "INVALID_STATE"

    edit = client.put(base, json={"title": "Renamed"}, headers=auth_headers())
    assert edit.status_code == 409


def test_edit_pending(client):
    notification_id = create(client).json()["id"]
    response = client.put(
        f"/api/user-1/notifications/{notification_id}",
        json={"title": "Leg day", "metadata": {"mood": "eager"}},
        headers=auth_headers(),
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Leg day"
    assert response.json()["metadata"]["mood"] == "eager"


def test_commands_endpoint(client):
    create(client, title="Dentist")
    schemas = client.get("/api/commands/schemas", headers=auth_headers()).json()
    assert len(schemas["tools"]) == 7

    result = client.post(
        "/api/user-1/commands/list_today",
        json={"date": future()[:10], "user_id": "someone-else"},
        headers=auth_headers(),
    ).json()
    assert result["success"] is True
    assert result["data"]["count"] == 1

    missing = client.post("/api/user-1/commands/launch_rocket", json={}, headers=auth_headers())
    assert missing.status_code == 404


def test_delivery_receipts(client, app, delivery_provider):
    subsystem = app.state.subsystem
    delivery_provider.outcomes = [DeliveryResult(ok=True, provider_message_id="ext-1", pending_confirmation=True)]
    notification = schedule(subsystem, minutes=0)
    asyncio.run(subsystem.dispatcher.tick(now=NOW))

    receipt = {"notification_id": notification.id, "ok": True, "provider_message_id": "ext-1"}
    assert client.post("/api/delivery/receipts", json=receipt).status_code == 403
    wrong = client.post("/api/delivery/receipts", json=receipt, headers={"X-Delivery-Token": "nope"})
    assert wrong.status_code == 403

    accepted = client.post("/api/delivery/receipts", json=receipt, headers={"X-Delivery-Token": "receipt-secret"})
    assert accepted.json()["accepted"] is True
    assert accepted.json()["notification"]["status"] == "sent"

    late = client.post("/api/delivery/receipts", json=receipt, headers={"X-Delivery-Token": "receipt-secret"})
    assert late.json()["accepted"] is False

    unknown = client.post(
        "/api/delivery/receipts",
        json={"notification_id": 4242, "ok": True},
        headers={"X-Delivery-Token": "receipt-secret"},
    )
    assert unknown.status_code == 404
