"""
Scheduled-action tick for external cron.

POST /api/v1/cron/process with header x-cron-secret runs one processing
batch followed by cleanup of old finished actions. Database work runs
off the event loop.
"""
import asyncio
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header

from nextspark.core.config import settings
from nextspark.core.errors import AuthenticationError
from nextspark.core.responses import api_response
from nextspark.features.scheduled_actions.processor import cleanup_old_actions, process_pending_actions
from nextspark.features.webhooks.service import register_webhook_actions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def _check_cron_secret(provided: Optional[str]) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        # Unset secret is tolerated outside production only
        if (settings.ENV or "").lower() == "production":
            raise AuthenticationError("CRON_SECRET is not configured", code="CRON_NOT_CONFIGURED")
        return
    if not provided or not hmac.compare_digest(provided, expected):
        raise AuthenticationError("Invalid cron secret", code="INVALID_CRON_SECRET")


@router.post("/process")
async def process(x_cron_secret: Optional[str] = Header(None)):
    _check_cron_secret(x_cron_secret)
    if not settings.SCHEDULED_ACTIONS_ENABLED:
        return api_response({"skipped": True, "reason": "scheduled actions disabled"})

    register_webhook_actions()
    result = await process_pending_actions()
    cleaned = await asyncio.to_thread(cleanup_old_actions)
    logger.info(f"[cron] processed={result.processed} failed={result.failed} cleaned={cleaned}")
    return api_response({**result.to_api(), "cleaned": cleaned})
