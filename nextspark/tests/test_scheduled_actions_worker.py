"""Tests for the scheduled actions worker entry point."""

from nextspark.core.config import settings
from nextspark.features.scheduled_actions import scheduler
from nextspark.features.scheduled_actions.registry import is_action_registered, register_scheduled_action
from nextspark.features.webhooks.service import WEBHOOK_ACTION
from nextspark.workers import scheduled_actions as worker


def test_once_processes_due_actions(reset_db, clean_registry, capsys):
    seen = []
    register_scheduled_action("report:build", lambda payload, action: seen.append(payload))
    action_id = scheduler.schedule_action("report:build", {"month": "2026-10"})

    worker.main(["--once"])

    assert seen == [{"month": "2026-10"}]
    assert scheduler.get_scheduled_action(action_id).status == "completed"
    assert is_action_registered(WEBHOOK_ACTION)
    assert "Processed: 1" in capsys.readouterr().out


def test_disabled_worker_exits(reset_db, clean_registry, monkeypatch, capsys):
    monkeypatch.setattr(settings, "SCHEDULED_ACTIONS_ENABLED", False)
    action_id = scheduler.schedule_action("report:build")

    worker.main(["--once"])

    assert scheduler.get_scheduled_action(action_id).status == "pending"
    assert "Disabled" in capsys.readouterr().out
