"""Tests for scheduling, processing, retries and cleanup of scheduled actions."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from nextspark.core.database import utc_now
from nextspark.core.errors import ValidationError
from nextspark.features.scheduled_actions import processor, scheduler
from nextspark.features.scheduled_actions.registry import (
    get_all_registered_actions,
    is_action_registered,
    register_scheduled_action,
)


@pytest.fixture
def actions_db(reset_db, clean_registry):
    yield


def test_registry(clean_registry):
    register_scheduled_action("report:build", lambda payload, action: None, timeout_ms=500)
    assert is_action_registered("report:build")
    assert get_all_registered_actions() == ["report:build"]


def test_schedule_defaults(actions_db):
    action_id = scheduler.schedule_action("report:build", {"x": 1}, team_id="team-1")
    action = scheduler.get_scheduled_action(action_id)
    assert action.status == "pending"
    assert action.attempts == 0
    assert action.max_retries == 3
    assert action.payload == {"x": 1}


def test_schedule_rejects_unknown_interval(actions_db):
    with pytest.raises(ValidationError):
        scheduler.schedule_action("report:build", recurring_interval="fortnightly")


def test_dedup_by_entity_id_keeps_latest_payload(actions_db):
    first = scheduler.schedule_action("sync:entity", {"entityId": "e1", "v": 1}, team_id="t1")
    second = scheduler.schedule_action("sync:entity", {"entityId": "e1", "v": 2}, team_id="t1")
    other = scheduler.schedule_action("sync:entity", {"entityId": "e2", "v": 1}, team_id="t1")
    assert first == second
    assert other != first
    assert scheduler.get_scheduled_action(first).payload["v"] == 2
    assert len(scheduler.list_scheduled_actions(action_type="sync:entity")) == 2


def test_recurring_actions_are_not_deduplicated(actions_db):
    a = scheduler.schedule_action("sync:entity", {"entityId": "e1"}, recurring_interval="hourly")
    b = scheduler.schedule_action("sync:entity", {"entityId": "e1"}, recurring_interval="hourly")
    assert a != b


def test_cancel_only_pending(actions_db):
    action_id = scheduler.schedule_action("report:build")
    assert scheduler.cancel_scheduled_action(action_id)
    cancelled = scheduler.get_scheduled_action(action_id)
    assert cancelled.status == "failed"
    assert cancelled.error_message == "Action cancelled by system"
    assert not scheduler.cancel_scheduled_action(action_id)
    assert not scheduler.cancel_scheduled_action("missing")


@pytest.mark.asyncio
async def test_process_success_and_future_actions_untouched(actions_db):
    seen = []
    register_scheduled_action("report:build", lambda payload, action: seen.append((payload, action.id)))
    due = scheduler.schedule_action("report:build", {"n": 1})
    later = scheduler.schedule_action("report:build", {"n": 2}, scheduled_at=utc_now() + timedelta(hours=1))

    result = await processor.process_pending_actions()

    assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
    assert seen == [({"n": 1}, due)]
    done = scheduler.get_scheduled_action(due)
    assert done.status == "completed"
    assert done.attempts == 1
    assert scheduler.get_scheduled_action(later).status == "pending"


@pytest.mark.asyncio
async def test_async_handler(actions_db):
    calls = []

    async def handler(payload, action):
        calls.append(payload["n"])

    register_scheduled_action("report:build", handler)
    scheduler.schedule_action("report:build", {"n": 7})
    result = await processor.process_pending_actions()
    assert result.succeeded == 1
    assert calls == [7]


@pytest.mark.asyncio
async def test_unregistered_type_fails_without_retry(actions_db):
    action_id = scheduler.schedule_action("ghost:action")
    result = await processor.process_pending_actions()
    assert result.failed == 1
    assert result.errors[0].error == "No handler registered for action type: ghost:action"
    assert scheduler.get_scheduled_action(action_id).status == "failed"


@pytest.mark.asyncio
async def test_timeout(actions_db):
    async def slow(payload, action):
        await asyncio.sleep(2)

    register_scheduled_action("slow:job", slow, timeout_ms=50)
    action_id = scheduler.schedule_action("slow:job", max_retries=0)
    result = await processor.process_pending_actions()
    assert result.errors[0].error == "Action timeout after 50ms"
    assert scheduler.get_scheduled_action(action_id).status == "failed"


@pytest.mark.asyncio
async def test_retries_with_backoff_then_fail(actions_db):
    def boom(payload, action):
        raise RuntimeError("upstream down")

    register_scheduled_action("flaky:job", boom)
    action_id = scheduler.schedule_action("flaky:job", max_retries=3)

    await processor.process_pending_actions()
    first = scheduler.get_scheduled_action(action_id)
    assert first.status == "pending"
    assert first.attempts == 1
    assert first.error_message == "upstream down"
    assert first.scheduled_at > utc_now() + timedelta(seconds=50)

    # Not due yet
    assert (await processor.process_pending_actions()).processed == 0

    await processor.process_pending_actions(now=utc_now() + timedelta(seconds=61))
    second = scheduler.get_scheduled_action(action_id)
    assert second.status == "pending"
    assert second.scheduled_at > utc_now() + timedelta(seconds=290)

    await processor.process_pending_actions(now=utc_now() + timedelta(seconds=301))
    final = scheduler.get_scheduled_action(action_id)
    assert final.status == "failed"
    assert final.attempts == 3


@pytest.mark.asyncio
async def test_recurring_action_reschedules(actions_db):
    register_scheduled_action("digest:send", lambda payload, action: None)
    start = utc_now() - timedelta(minutes=1)
    action_id = scheduler.schedule_recurring_action("digest:send", {"team": "t1"}, "hourly", scheduled_at=start)

    await processor.process_pending_actions()

    assert scheduler.get_scheduled_action(action_id).status == "completed"
    pending = scheduler.list_scheduled_actions(status="pending", action_type="digest:send")
    assert len(pending) == 1
    assert pending[0].recurring_interval == "hourly"
    assert abs((pending[0].scheduled_at - (start + timedelta(hours=1))).total_seconds()) < 1


@pytest.mark.asyncio
async def test_batch_size(actions_db):
    register_scheduled_action("report:build", lambda payload, action: None)
    for n in range(3):
        scheduler.schedule_action("report:build", {"n": n})
    assert (await processor.process_pending_actions(batch_size=2)).processed == 2
    assert (await processor.process_pending_actions(batch_size=2)).processed == 1


@pytest.mark.asyncio
async def test_cleanup_old_actions(actions_db):
    register_scheduled_action("report:build", lambda payload, action: None)
    scheduler.schedule_action("report:build")
    await processor.process_pending_actions()
    pending_id = scheduler.schedule_action("report:build", scheduled_at=utc_now() + timedelta(days=30))

    assert processor.cleanup_old_actions(now=utc_now()) == 0
    assert processor.cleanup_old_actions(now=utc_now() + timedelta(days=8)) == 1
    assert scheduler.get_scheduled_action(pending_id) is not None


def test_cron_expressions_are_valid_intervals(actions_db):
    after = datetime(2026, 3, 1, 15, 30, tzinfo=timezone.utc)
    assert scheduler.next_run_at("0 0 * * *", after) == datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)
    assert scheduler.next_run_at("*/15 * * * *", after) == datetime(2026, 3, 1, 15, 45, tzinfo=timezone.utc)

    action_id = scheduler.schedule_recurring_action("digest:send", {}, "0 9 * * MON")
    action = scheduler.get_scheduled_action(action_id)
    assert action.recurring_interval == "0 9 * * MON"
    assert action.recurrence_type == "fixed"


def test_recurrence_type_is_validated(actions_db):
    with pytest.raises(ValidationError):
        scheduler.schedule_action("digest:send", recurring_interval="daily", recurrence_type="sometimes")
    one_off = scheduler.schedule_action("digest:send", recurrence_type="rolling")
    assert scheduler.get_scheduled_action(one_off).recurrence_type is None


def test_dedup_takes_advisory_lock_on_postgres(monkeypatch):
    executed = []

    class RecordingSession:
        def execute(self, stmt):
            executed.append(str(stmt))

    monkeypatch.setattr(scheduler, "dialect_name", lambda: "sqlite")
    scheduler._acquire_dedup_lock(RecordingSession(), "webhook:send", "task-1")
    assert executed == []

    monkeypatch.setattr(scheduler, "dialect_name", lambda: "postgresql")
    scheduler._acquire_dedup_lock(RecordingSession(), "webhook:send", "task-1")
    assert "pg_advisory_xact_lock(hashtext(" in executed[0]


def test_lock_taken_only_when_deduplicating(actions_db, monkeypatch):
    locked = []
    monkeypatch.setattr(scheduler, "_acquire_dedup_lock", lambda session, action_type, entity_id: locked.append(entity_id))
    scheduler.schedule_action("sync:entity", {"entityId": "e1"})
    scheduler.schedule_action("sync:entity", {"data": "no entity"})
    scheduler.schedule_action("sync:entity", {"entityId": "e2"}, recurring_interval="daily")
    assert locked == ["e1"]


@pytest.mark.asyncio
async def test_one_action_per_lock_group_per_batch(actions_db):
    seen = []
    register_scheduled_action("content:publish", lambda payload, action: seen.append(payload["n"]))
    scheduler.schedule_action("content:publish", {"n": 1}, lock_group="client:1")
    scheduler.schedule_action("content:publish", {"n": 2}, lock_group="client:1")
    scheduler.schedule_action("content:publish", {"n": 3})

    assert (await processor.process_pending_actions()).processed == 2
    assert sorted(seen) == [1, 3]
    assert (await processor.process_pending_actions()).processed == 1
    assert sorted(seen) == [1, 2, 3]


def test_running_lock_group_is_skipped(actions_db):
    first = scheduler.schedule_action("content:publish", {"n": 1}, lock_group="client:1")
    assert [a.id for a in processor._claim_due(10, utc_now())] == [first]

    scheduler.schedule_action("content:publish", {"n": 2}, lock_group="client:1")
    free = scheduler.schedule_action("content:publish", {"n": 3}, lock_group="client:2")
    assert [a.id for a in processor._claim_due(10, utc_now())] == [free]


@pytest.mark.asyncio
async def test_fixed_recurrence_keeps_cadence(actions_db):
    register_scheduled_action("digest:send", lambda payload, action: None)
    start = utc_now() - timedelta(hours=3, minutes=1)
    scheduler.schedule_recurring_action("digest:send", {}, "hourly", scheduled_at=start, lock_group="digest")

    await processor.process_pending_actions()

    (pending,) = scheduler.list_scheduled_actions(status="pending", action_type="digest:send")
    assert abs((pending.scheduled_at - (start + timedelta(hours=4))).total_seconds()) < 1
    assert pending.recurrence_type == "fixed"
    assert pending.lock_group == "digest"


@pytest.mark.asyncio
async def test_rolling_recurrence_counts_from_completion(actions_db):
    register_scheduled_action("digest:send", lambda payload, action: None)
    start = utc_now() - timedelta(hours=3, minutes=1)
    scheduler.schedule_recurring_action("digest:send", {}, "hourly", scheduled_at=start, recurrence_type="rolling")

    await processor.process_pending_actions()

    (pending,) = scheduler.list_scheduled_actions(status="pending", action_type="digest:send")
    assert abs((pending.scheduled_at - (utc_now() + timedelta(hours=1))).total_seconds()) < 5
    assert pending.recurrence_type == "rolling"


@pytest.mark.asyncio
async def test_database_work_runs_off_the_event_loop(actions_db, monkeypatch):
    loop_thread = threading.get_ident()
    threads = []

    def recording(fn):
        def wrapper(*args):
            threads.append(threading.get_ident())
            return fn(*args)
        return wrapper

    monkeypatch.setattr(processor, "_claim_due", recording(processor._claim_due))
    monkeypatch.setattr(processor, "_mark_completed", recording(processor._mark_completed))
    register_scheduled_action("report:build", lambda payload, action: None)
    scheduler.schedule_action("report:build")

    assert (await processor.process_pending_actions()).succeeded == 1
    assert len(threads) == 2
    assert loop_thread not in threads
