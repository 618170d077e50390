from datetime import date, datetime, timedelta

from coach_app.services.schedule_index import ScheduleIndex

T0 = datetime(2026, 3, 2, 9, 0)


def test_due_before_orders_by_time_then_id():
    index = ScheduleIndex()
    index.upsert(5, "u1", T0 + timedelta(minutes=10))
    index.upsert(3, "u1", T0)
    index.upsert(4, "u2", T0)
    index.upsert(9, "u1", T0 + timedelta(hours=2))

    assert index.due_before(T0 + timedelta(minutes=10)) == [3, 4, 5]
    assert index.due_before(T0 - timedelta(seconds=1)) == []
    assert index.due_before(T0 + timedelta(days=1), limit=2) == [3, 4]


def test_upsert_moves_and_inactive_removes():
    index = ScheduleIndex()
    index.upsert(1, "u1", T0)
    index.upsert(1, "u1", T0 + timedelta(hours=1))
    assert len(index) == 1
    assert index.due_before(T0) == []
    assert index.due_before(T0 + timedelta(hours=1)) == [1]

    index.upsert(1, "u1", T0, active=False)
    assert 1 not in index
    assert index.due_before(T0 + timedelta(days=1)) == []


def test_remove_unknown_id_is_noop():
    index = ScheduleIndex()
    index.remove(42)
    assert len(index) == 0


def test_for_date_uses_user_zone():
    index = ScheduleIndex()
    # 2026-03-02 23:30 UTC is already March 3rd in Berlin (UTC+1)
    index.upsert(1, "u1", datetime(2026, 3, 2, 23, 30))
    index.upsert(2, "u1", datetime(2026, 3, 2, 8, 0))
    index.upsert(3, "u2", datetime(2026, 3, 2, 8, 0))

    assert index.for_date("u1", date(2026, 3, 2), "UTC") == [2, 1]
    assert index.for_date("u1", date(2026, 3, 2), "Europe/Berlin") == [2]
    assert index.for_date("u1", date(2026, 3, 3), "Europe/Berlin") == [1]


def test_rebuild_replaces_contents():
    index = ScheduleIndex()
    index.upsert(1, "u1", T0)
    count = index.rebuild([(7, "u1", T0 + timedelta(minutes=5), 1), (8, "u2", T0, 1)])
    assert count == 2
    assert 1 not in index
    assert index.due_before(T0 + timedelta(hours=1)) == [8, 7]


def test_older_version_does_not_overwrite_newer():
    index = ScheduleIndex()
    assert index.upsert(1, "u1", T0, version=1)
    assert index.upsert(1, "u1", T0 + timedelta(minutes=5), active=False, version=2)

    # a slower writer publishing the row as it was before the cancel
    assert index.upsert(1, "u1", T0, version=1) is False
    assert 1 not in index

    assert index.upsert(1, "u1", T0 + timedelta(hours=1), version=3)
    assert index.due_before(T0 + timedelta(hours=1)) == [1]


def test_remove_respects_versions():
    index = ScheduleIndex()
    index.upsert(1, "u1", T0, version=4)
    assert index.remove(1, version=3) is False
    assert 1 in index
    assert index.remove(1, version=5)
    assert index.upsert(1, "u1", T0, version=4) is False
    assert len(index) == 0


def test_rebuild_keeps_newer_published_state():
    index = ScheduleIndex()
    index.upsert(1, "u1", T0, version=1)
    index.remove(1, version=2)
    index.upsert(2, "u1", T0 + timedelta(minutes=30), version=3)

    # snapshot read before both writes committed
    index.rebuild([(1, "u1", T0, 1), (2, "u1", T0, 2), (3, "u2", T0, 1)])

    assert 1 not in index
    assert index.due_before(T0) == [3]
    assert index.due_before(T0 + timedelta(minutes=30)) == [3, 2]
