import asyncio

import pytest

from coach_app.mcp.server import build_mcp_server

from tests.conftest import NOW, schedule


@pytest.fixture
def server(subsystem):
    return build_mcp_server(subsystem.commands, clock=lambda: NOW)


def invoke(server, tool, **arguments):
    return asyncio.run(server.invoke_tool(tool, **arguments))


def test_all_tools_registered_with_schemas(server):
    assert sorted(server.list_tools()) == [
        "cancel_notification",
        "create_notification",
        "delete_notification",
        "duplicate_notification",
        "list_today",
        "reschedule_notification",
        "snooze_notification",
    ]
    for schema in server.get_tool_schemas().values():
        assert "user_id" in schema["parameters"]["required"]


def test_user_id_is_mandatory(server):
    with pytest.raises(ValueError):
        invoke(server, "list_today")
    result = invoke(server, "list_today", user_id="")
    assert result["success"] is False
    assert result["error"]["code"] == "UNAUTHORIZED"


def test_unknown_tool(server):
    with pytest.raises(ValueError):
        invoke(server, "launch_rocket", user_id="user-1")


def test_create_and_list_today(server, user):
    created = invoke(
        server,
        "create_notification",
        user_id="user-1",
        type="reminder",
        content="Stretch, {user_name}",
        scheduled_for="2026-03-02T15:00:00Z",
        metadata={"task_id": 4, "source": "chat"},
    )
    assert created["success"] is True
    assert created["data"]["status"] == "pending"
    assert created["data"]["metadata"]["task_id"] == 4
    assert created["data"]["metadata"]["source"] == "chat"

    listed = invoke(server, "list_today", user_id="user-1")
    assert listed["success"] is True
    assert listed["data"]["date"] == "2026-03-02"
    assert [n["id"] for n in listed["data"]["notifications"]] == [created["data"]["id"]]


def test_create_validation_errors(server):
    missing = invoke(server, "create_notification", user_id="user-1", type="reminder")
    assert missing["error"]["code"] == "VALIDATION_ERROR"
    assert missing["error"]["details"]["field"] == "scheduled_for"

    past = invoke(
        server, "create_notification", user_id="user-1", type="reminder", scheduled_for="2026-03-01T09:00:00Z"
    )
    assert past["success"] is False
    assert past["error"]["code"] == "VALIDATION_ERROR"

    garbled = invoke(server, "create_notification", user_id="user-1", type="reminder", scheduled_for="tomorrowish")
    assert garbled["error"]["code"] == "VALIDATION_ERROR"


def test_snooze_by_description(server, subsystem):
    target = schedule(subsystem, minutes=180, title="Gym")
    result = invoke(server, "snooze_notification", user_id="user-1", description="3pm gym reminder", minutes=30)
    assert result["success"] is True
    assert result["data"]["id"] == target.id
    assert result["data"]["scheduled_for"].startswith("2026-03-02T15:30:00")
    assert result["data"]["metadata"]["snoozed"] is True


def test_ambiguous_reference_returns_candidates(server, subsystem):
    schedule(subsystem, minutes=180, title="Gym")
    schedule(subsystem, minutes=300, title="Gym")
    result = invoke(server, "cancel_notification", user_id="user-1", description="gym reminder")
    assert result["success"] is False
    assert result["error"]["code"] == "AMBIGUOUS"
    assert len(result["error"]["details"]["candidates"]) == 2


def test_reference_not_found(server):
    result = invoke(server, "delete_notification", user_id="user-1", description="the 4pm yoga reminder")
    assert result["error"]["code"] == "NOT_FOUND"


def test_reschedule_cancel_duplicate_delete(server, subsystem):
    target = schedule(subsystem, minutes=60, title="Call mom")

    moved = invoke(
        server,
        "reschedule_notification",
        user_id="user-1",
        description=f"#{target.id}",
        new_time="2026-03-02T18:00:00+00:00",
    )
    assert moved["data"]["metadata"]["rescheduled"] is True

    copy = invoke(server, "duplicate_notification", user_id="user-1", description="call mom")
    assert copy["success"] is True
    assert copy["data"]["metadata"]["duplicated_from"] == target.id

    cancelled = invoke(server, "cancel_notification", user_id="user-1", description=f"#{target.id}")
    assert cancelled["data"]["status"] == "cancelled"

    deleted = invoke(server, "delete_notification", user_id="user-1", description=f"#{copy['data']['id']}")
    assert deleted["data"] == {"id": copy["data"]["id"], "deleted": True}


def test_other_users_notification_is_invisible(server, subsystem):
    theirs = schedule(subsystem, user_id="user-2")
    result = invoke(server, "cancel_notification", user_id="user-1", description=f"#{theirs.id}")
    assert result["error"]["code"] == "NOT_FOUND"
    assert subsystem.store.get(theirs.id).status == "pending"


def test_snooze_minutes_must_be_integer(server, subsystem):
    schedule(subsystem, minutes=180, title="Gym")
    result = invoke(server, "snooze_notification", user_id="user-1", description="gym", minutes="soon")
    assert result["error"]["code"] == "VALIDATION_ERROR"
