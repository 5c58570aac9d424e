"""
nextspark/features/webhooks/service.py

Outgoing webhooks.

Events are "<entity>:<action>" strings (task:created, subscription:cancelled).
Entity services enqueue a `webhook:send` scheduled action; the processor
POSTs the JSON payload to every endpoint the event routes to.

Routing:
1. An explicit endpoint key wins.
2. Otherwise every enabled endpoint with a matching pattern
   (entity:action, entity:*, *:action, *:*).
3. Otherwise the default endpoint.
An endpoint whose environment variable is unset is skipped.

A partially failed delivery is retried only for the endpoints that failed.
"""

import asyncio
import hashlib
import hmac
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from nextspark.core.config import settings
from nextspark.features.scheduled_actions.registry import register_scheduled_action
from nextspark.features.scheduled_actions.scheduler import schedule_action, update_action_payload
from nextspark.models.webhook import WebhookPayload


logger = logging.getLogger(__name__)

WEBHOOK_ACTION = "webhook:send"

WEBHOOK_ENDPOINTS: Dict[str, Dict[str, Any]] = {
    "default": {
        "env_var": "WEBHOOK_URL_DEFAULT",
        "description": "Default webhook for general notifications",
        "patterns": ["*:*"],
        "enabled": False,
    },
    "tasks": {
        "env_var": "WEBHOOK_URL_TASKS",
        "description": "Task create/update/delete notifications",
        "patterns": ["task:created", "task:updated", "task:deleted"],
        "enabled": True,
    },
    "subscriptions": {
        "env_var": "WEBHOOK_URL_SUBSCRIPTIONS",
        "description": "Subscription lifecycle notifications",
        "patterns": [
            "subscription:created",
            "subscription:updated",
            "subscription:renewed",
            "subscription:cancelled",
            "subscription:expiring_soon",
        ],
        "enabled": True,
    },
}

DEFAULT_ENDPOINT = "default"


def event_matches(pattern: str, event: str) -> bool:
    pattern_entity, _, pattern_action = pattern.partition(":")
    entity, _, action = event.partition(":")
    return pattern_entity in ("*", entity) and pattern_action in ("*", action)


def _endpoint_url(key: str, endpoints: Dict[str, Dict[str, Any]]) -> Optional[str]:
    endpoint = endpoints.get(key)
    if not endpoint:
        return None
    return os.getenv(endpoint["env_var"]) or None


def resolve_webhook_urls(
    event: str,
    explicit_key: Optional[str] = None,
    endpoints: Optional[Dict[str, Dict[str, Any]]] = None,
    default_endpoint: Optional[str] = DEFAULT_ENDPOINT,
) -> List[str]:
    endpoints = WEBHOOK_ENDPOINTS if endpoints is None else endpoints

    if explicit_key:
        url = _endpoint_url(explicit_key, endpoints)
        if not url:
            logger.warning("[webhooks] endpoint %s has no URL configured", explicit_key)
        return [url] if url else []

    urls: List[str] = []
    for key, endpoint in endpoints.items():
        if key == default_endpoint or not endpoint.get("enabled", True):
            continue
        if any(event_matches(p, event) for p in endpoint.get("patterns", [])):
            url = _endpoint_url(key, endpoints)
            if url and url not in urls:
                urls.append(url)
    if urls:
        return urls

    url = _endpoint_url(default_endpoint, endpoints) if default_endpoint else None
    return [url] if url else []


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _canonical_json_bytes(payload: Dict) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str).encode()


def sign_webhook(secret: str, body_bytes: bytes) -> str:
    """HMAC-SHA256 over the raw body, hex encoded."""
    return hmac.new(secret.encode(), body_bytes, hashlib.sha256).hexdigest()


def build_webhook_payload(payload: Dict[str, Any], action_id: Optional[str] = None) -> WebhookPayload:
    event = payload["event"]
    return WebhookPayload(
        event=event,
        entity=payload.get("entity") or event.partition(":")[0],
        entity_id=payload.get("entityId"),
        data=payload.get("data") or {},
        team_id=payload.get("teamId"),
        timestamp=payload.get("timestamp") or _timestamp(),
        action_id=action_id,
    )


async def send_webhook(payload: Dict[str, Any], action=None) -> int:
    """
    Scheduled action handler for webhook:send.

    Returns the number of endpoints delivered to in this run. Any non-2xx
    response raises after every endpoint was attempted, so the processor
    retries; endpoints that already succeeded are recorded on the action
    (payload "deliveredUrls") and skipped by the retry.
    """
    event = payload.get("event")
    if not event:
        raise ValueError("webhook payload is missing 'event'")

    urls = resolve_webhook_urls(event, payload.get("endpointKey"))
    if not urls:
        logger.info("[webhooks] no endpoint for %s, skipping", event)
        return 0

    already = list(payload.get("deliveredUrls") or [])
    pending = [url for url in urls if url not in already]
    if not pending:
        logger.info("[webhooks] %s already delivered to every endpoint", event)
        return 0

    body = build_webhook_payload(payload, action_id=getattr(action, "id", None)).to_api()
    body_bytes = _canonical_json_bytes(body)
    headers = {"Content-Type": "application/json", "X-NextSpark-Event": event}
    if settings.WEBHOOK_SIGNING_SECRET:
        headers["X-NextSpark-Signature"] = sign_webhook(settings.WEBHOOK_SIGNING_SECRET, body_bytes)

    failures = []
    delivered: List[str] = []
    async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
        for url in pending:
            try:
                response = await client.post(url, content=body_bytes, headers=headers)
                response.raise_for_status()
                delivered.append(url)
            except httpx.HTTPError as exc:
                logger.warning("[webhooks] delivery of %s to %s failed: %s", event, url, exc)
                failures.append(f"{url}: {exc}")

    if failures:
        if delivered and getattr(action, "id", None):
            await asyncio.to_thread(
                update_action_payload, action.id, {**payload, "deliveredUrls": already + delivered}
            )
        raise RuntimeError(f"Webhook delivery failed for {len(failures)} endpoint(s): {'; '.join(failures)}")
    logger.info("[webhooks] delivered %s to %d endpoint(s)", event, len(delivered))
    return len(delivered)


def register_webhook_actions() -> None:
    register_scheduled_action(
        WEBHOOK_ACTION,
        send_webhook,
        description="POST entity events to configured webhook endpoints",
        timeout_ms=(settings.WEBHOOK_TIMEOUT_SECONDS + 5) * 1000,
    )


def schedule_entity_webhook(
    entity: str,
    action: str,
    entity_id: Optional[str],
    data: Optional[Dict[str, Any]] = None,
    team_id: Optional[str] = None,
    endpoint_key: Optional[str] = None,
) -> Optional[str]:
    """
    Enqueue a webhook for an entity event. Never raises.

    Returns the scheduled action id, or None when webhooks are disabled,
    nothing routes the event, or enqueueing failed.
    """
    if not (settings.WEBHOOKS_ENABLED and settings.SCHEDULED_ACTIONS_ENABLED):
        return None
    event = f"{entity}:{action}"
    try:
        if not resolve_webhook_urls(event, endpoint_key):
            return None
        payload = {
            "event": event,
            "entity": entity,
            "entityId": entity_id,
            "data": data or {},
            "teamId": team_id,
            "timestamp": _timestamp(),
        }
        if endpoint_key:
            payload["endpointKey"] = endpoint_key
        return schedule_action(WEBHOOK_ACTION, payload, team_id=team_id)
    except Exception:
        logger.error("[webhooks] failed to schedule %s for %s", event, entity_id, exc_info=True)
        return None
