"""Tests for webhook routing, delivery and entity event scheduling."""

import hashlib
import hmac
import json

import httpx
import pytest

from nextspark.core.config import settings
from nextspark.features.scheduled_actions.scheduler import list_scheduled_actions
from nextspark.features.webhooks import service as webhooks

ENDPOINTS = {
    "default": {"env_var": "HOOK_DEFAULT", "patterns": ["*:*"], "enabled": False},
    "tasks": {"env_var": "HOOK_TASKS", "patterns": ["task:*"], "enabled": True},
    "audit": {"env_var": "HOOK_AUDIT", "patterns": ["*:deleted"], "enabled": True},
    "paused": {"env_var": "HOOK_PAUSED", "patterns": ["*:*"], "enabled": False},
}


@pytest.fixture
def hook_env(monkeypatch):
    monkeypatch.setenv("HOOK_DEFAULT", "https://hooks.example.com/default")
    monkeypatch.setenv("HOOK_TASKS", "https://hooks.example.com/tasks")
    monkeypatch.setenv("HOOK_AUDIT", "https://hooks.example.com/audit")
    monkeypatch.setenv("HOOK_PAUSED", "https://hooks.example.com/paused")


@pytest.mark.parametrize(
    "pattern,event,expected",
    [
        ("task:created", "task:created", True),
        ("task:*", "task:deleted", True),
        ("*:deleted", "page:deleted", True),
        ("*:*", "anything:else", True),
        ("task:created", "task:updated", False),
        ("page:*", "task:created", False),
    ],
)
def test_event_matches(pattern, event, expected):
    assert webhooks.event_matches(pattern, event) is expected


def test_explicit_key_wins(hook_env):
    assert webhooks.resolve_webhook_urls("task:created", "audit", ENDPOINTS) == ["https://hooks.example.com/audit"]


def test_pattern_matching_collects_enabled_endpoints(hook_env):
    assert webhooks.resolve_webhook_urls("task:deleted", endpoints=ENDPOINTS) == [
        "https://hooks.example.com/tasks",
        "https://hooks.example.com/audit",
    ]


def test_falls_back_to_default(hook_env):
    assert webhooks.resolve_webhook_urls("customer:created", endpoints=ENDPOINTS) == [
        "https://hooks.example.com/default"
    ]


def test_unset_env_var_skips_endpoint(hook_env, monkeypatch):
    monkeypatch.delenv("HOOK_TASKS")
    monkeypatch.delenv("HOOK_DEFAULT")
    assert webhooks.resolve_webhook_urls("task:created", endpoints=ENDPOINTS) == []
    assert webhooks.resolve_webhook_urls("task:created", "tasks", ENDPOINTS) == []


def test_sign_webhook_is_hmac_sha256():
    expected = hmac.new(b"secret", b"{}", hashlib.sha256).hexdigest()
    assert webhooks.sign_webhook("secret", b"{}") == expected


class FakeResponse:
    def __init__(self, url, status_code):
        self.status_code = status_code
        self.request = httpx.Request("POST", url)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("error", request=self.request, response=httpx.Response(self.status_code))


class FakeAsyncClient:
    sent = []
    status_by_url = {}

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def post(self, url, content=None, headers=None):
        FakeAsyncClient.sent.append({"url": url, "body": json.loads(content), "headers": headers})
        return FakeResponse(url, FakeAsyncClient.status_by_url.get(url, 200))


@pytest.fixture
def fake_http(monkeypatch):
    FakeAsyncClient.sent = []
    FakeAsyncClient.status_by_url = {}
    monkeypatch.setattr(webhooks.httpx, "AsyncClient", FakeAsyncClient)
    monkeypatch.setenv("WEBHOOK_URL_TASKS", "https://hooks.example.com/tasks")
    return FakeAsyncClient


@pytest.mark.asyncio
async def test_send_webhook_posts_camel_case_body(fake_http):
    delivered = await webhooks.send_webhook(
        {"event": "task:created", "entityId": "t1", "data": {"title": "A"}, "teamId": "team-1"}
    )
    assert delivered == 1
    sent = fake_http.sent[0]
    assert sent["url"] == "https://hooks.example.com/tasks"
    assert sent["headers"]["X-NextSpark-Event"] == "task:created"
    assert "X-NextSpark-Signature" not in sent["headers"]
    assert sent["body"]["entity"] == "task"
    assert sent["body"]["entityId"] == "t1"
    assert sent["body"]["teamId"] == "team-1"


@pytest.mark.asyncio
async def test_send_webhook_signs_when_secret_set(fake_http, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_SIGNING_SECRET", "whsec")
    await webhooks.send_webhook({"event": "task:updated", "entityId": "t1"})
    headers = fake_http.sent[0]["headers"]
    body_bytes = webhooks._canonical_json_bytes(fake_http.sent[0]["body"])
    assert headers["X-NextSpark-Signature"] == webhooks.sign_webhook("whsec", body_bytes)


@pytest.mark.asyncio
async def test_send_webhook_raises_on_failed_delivery(fake_http):
    fake_http.status_by_url["https://hooks.example.com/tasks"] = 500
    with pytest.raises(RuntimeError, match="Webhook delivery failed"):
        await webhooks.send_webhook({"event": "task:deleted", "entityId": "t1"})


@pytest.mark.asyncio
async def test_send_webhook_without_route_is_noop(fake_http):
    assert await webhooks.send_webhook({"event": "customer:created"}) == 0
    assert fake_http.sent == []


@pytest.mark.asyncio
async def test_send_webhook_requires_event(fake_http):
    with pytest.raises(ValueError):
        await webhooks.send_webhook({})


def test_entity_events_schedule_webhooks(team, monkeypatch):
    from nextspark.features.tasks.service import create_task, update_task

    monkeypatch.setenv("WEBHOOK_URL_TASKS", "https://hooks.example.com/tasks")
    task = create_task(team.id, "owner-1", {"title": "Hook me"})
    update_task(team.id, "owner-1", task.id, {"status": "done"})

    queued = list_scheduled_actions(action_type=webhooks.WEBHOOK_ACTION)
    # created + updated for the same task collapse into one pending action
    assert len(queued) == 1
    assert queued[0].payload["event"] == "task:updated"
    assert queued[0].payload["data"]["status"] == "done"
    assert queued[0].team_id == team.id


def test_no_route_means_nothing_queued(team):
    from nextspark.features.customers.service import create_customer

    create_customer(team.id, "owner-1", {"name": "Globex"})
    assert list_scheduled_actions(action_type=webhooks.WEBHOOK_ACTION) == []


def test_disabled_webhooks_schedule_nothing(reset_db, monkeypatch):
    monkeypatch.setenv("WEBHOOK_URL_TASKS", "https://hooks.example.com/tasks")
    monkeypatch.setattr(settings, "WEBHOOKS_ENABLED", False)
    assert webhooks.schedule_entity_webhook("task", "created", "t1", team_id="team-1") is None


@pytest.mark.asyncio
async def test_retry_skips_endpoints_already_delivered(reset_db, clean_registry, fake_http, hook_env, monkeypatch):
    from datetime import timedelta

    from nextspark.core.database import utc_now
    from nextspark.features.scheduled_actions.processor import process_pending_actions
    from nextspark.features.scheduled_actions.scheduler import get_scheduled_action, schedule_action

    tasks_url = "https://hooks.example.com/tasks"
    audit_url = "https://hooks.example.com/audit"
    monkeypatch.setattr(webhooks, "WEBHOOK_ENDPOINTS", ENDPOINTS)
    webhooks.register_webhook_actions()
    fake_http.status_by_url[audit_url] = 500
    action_id = schedule_action(webhooks.WEBHOOK_ACTION, {"event": "task:deleted", "entityId": "t1"})

    first = await process_pending_actions()
    assert first.failed == 1
    assert get_scheduled_action(action_id).payload["deliveredUrls"] == [tasks_url]

    fake_http.status_by_url[audit_url] = 200
    retry = await process_pending_actions(now=utc_now() + timedelta(minutes=2))
    assert retry.succeeded == 1

    calls = [sent["url"] for sent in fake_http.sent]
    assert calls == [tasks_url, audit_url, audit_url]
    assert calls.count(tasks_url) == 1
    assert get_scheduled_action(action_id).status == "completed"
