"""
nextspark/features/scheduled_actions/processor.py

Runs due scheduled actions.

Lifecycle per action:
    pending -> running (attempts + 1) -> completed
                                      -> pending again (retry, backoff)
                                      -> failed (retries exhausted)

Handlers run under asyncio.wait_for with the definition's timeout.
Recurring actions enqueue their next occurrence after completing.
Actions sharing a lock group never run concurrently: a group with a
running action is skipped, and a batch claims at most one per group.
Database work runs in worker threads so the event loop stays free.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update, delete

from nextspark.core.config import settings
from nextspark.core.database import dialect_name, ensure_utc, get_db_session, scheduled_actions, utc_now
from nextspark.features.scheduled_actions.registry import get_action_handler
from nextspark.features.scheduled_actions.scheduler import next_run_at, row_to_action, schedule_action
from nextspark.models.scheduled_action import ActionError, ProcessResult, ScheduledAction


logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS: List[int] = [60, 300, 900]


class HandlerNotRegistered(Exception):
    pass


def _claim_due(batch_size: int, now: datetime) -> List[ScheduledAction]:
    """Select due pending actions and mark them running in one transaction."""
    busy_groups = (
        select(scheduled_actions.c.lock_group)
        .where(scheduled_actions.c.status == "running")
        .where(scheduled_actions.c.lock_group.is_not(None))
    )
    stmt = (
        select(scheduled_actions)
        .where(scheduled_actions.c.status == "pending")
        .where(scheduled_actions.c.scheduled_at <= now)
        .where(scheduled_actions.c.lock_group.is_(None) | scheduled_actions.c.lock_group.not_in(busy_groups))
        .order_by(scheduled_actions.c.scheduled_at)
        .limit(batch_size)
    )
    if dialect_name() == "postgresql":
        stmt = stmt.with_for_update(skip_locked=True)

    claimed = []
    groups = set()
    with get_db_session() as session:
        for row in session.execute(stmt).fetchall():
            if row.lock_group:
                if row.lock_group in groups:
                    continue
                groups.add(row.lock_group)
            session.execute(
                update(scheduled_actions)
                .where(scheduled_actions.c.id == row.id)
                .values(status="running", started_at=now, attempts=row.attempts + 1, updated_at=now)
            )
            claimed.append(row_to_action(row).model_copy(update={"status": "running", "attempts": row.attempts + 1}))
    return claimed


async def _run_handler(action: ScheduledAction) -> None:
    definition = get_action_handler(action.action_type)
    if definition is None:
        raise HandlerNotRegistered(f"No handler registered for action type: {action.action_type}")

    payload = dict(action.payload or {})
    if inspect.iscoroutinefunction(definition.handler):
        call = definition.handler(payload, action)
    else:
        call = asyncio.to_thread(definition.handler, payload, action)
    try:
        await asyncio.wait_for(call, timeout=definition.timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise TimeoutError(f"Action timeout after {definition.timeout_ms}ms")


def _next_occurrence(action: ScheduledAction, now: datetime) -> datetime:
    if action.recurrence_type == "rolling":
        return next_run_at(action.recurring_interval, now)
    # fixed: keep the cadence, skipping occurrences missed while down
    next_at = next_run_at(action.recurring_interval, action.scheduled_at)
    while next_at <= now:
        next_at = next_run_at(action.recurring_interval, next_at)
    return next_at


def _mark_completed(action: ScheduledAction, now: datetime) -> None:
    with get_db_session() as session:
        session.execute(
            update(scheduled_actions)
            .where(scheduled_actions.c.id == action.id)
            .values(status="completed", completed_at=now, error_message=None, updated_at=now)
        )
    if action.recurring_interval:
        schedule_action(
            action.action_type,
            action.payload,
            team_id=action.team_id,
            scheduled_at=_next_occurrence(action, now),
            recurring_interval=action.recurring_interval,
            recurrence_type=action.recurrence_type,
            lock_group=action.lock_group,
            max_retries=action.max_retries,
        )


def _mark_failed(action: ScheduledAction, message: str, now: datetime, retry: bool) -> None:
    values = {"error_message": message[:1000], "updated_at": now}
    if retry and action.attempts < action.max_retries:
        delay = RETRY_BACKOFF_SECONDS[min(action.attempts - 1, len(RETRY_BACKOFF_SECONDS) - 1)]
        values.update(status="pending", scheduled_at=now + timedelta(seconds=delay))
    else:
        values.update(status="failed", completed_at=now)
    with get_db_session() as session:
        session.execute(update(scheduled_actions).where(scheduled_actions.c.id == action.id).values(**values))


async def process_pending_actions(batch_size: Optional[int] = None, now: Optional[datetime] = None) -> ProcessResult:
    """
    Process up to `batch_size` due actions sequentially.

    Database errors while claiming propagate; handler errors are recorded
    on the action and reported in the result.
    """
    now = ensure_utc(now) if now else utc_now()
    actions = await asyncio.to_thread(_claim_due, batch_size or settings.SCHEDULED_ACTIONS_BATCH_SIZE, now)

    succeeded = 0
    errors: List[ActionError] = []
    for action in actions:
        try:
            await _run_handler(action)
        except HandlerNotRegistered as exc:
            await asyncio.to_thread(_mark_failed, action, str(exc), utc_now(), retry=False)
            errors.append(ActionError(action_id=action.id, error=str(exc)))
        except Exception as exc:
            message = str(exc) or "Unknown error"
            logger.warning(
                "[scheduled-actions] %s failed (attempt %d/%d): %s",
                action.action_type, action.attempts, action.max_retries, message,
                extra={"team_id": action.team_id},
            )
            await asyncio.to_thread(_mark_failed, action, message, utc_now(), retry=True)
            errors.append(ActionError(action_id=action.id, error=message))
        else:
            await asyncio.to_thread(_mark_completed, action, utc_now())
            succeeded += 1

    result = ProcessResult(processed=len(actions), succeeded=succeeded, failed=len(errors), errors=errors)
    if actions:
        logger.info(
            "[scheduled-actions] processed=%d succeeded=%d failed=%d",
            result.processed, result.succeeded, result.failed,
        )
    return result


def cleanup_old_actions(retention_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Delete completed/failed actions older than the retention window."""
    days = settings.SCHEDULED_ACTIONS_RETENTION_DAYS if retention_days is None else retention_days
    cutoff = (ensure_utc(now) if now else utc_now()) - timedelta(days=days)
    with get_db_session() as session:
        result = session.execute(
            delete(scheduled_actions)
            .where(scheduled_actions.c.status.in_(("completed", "failed")))
            .where(scheduled_actions.c.updated_at < cutoff)
        )
    if result.rowcount:
        logger.info("[scheduled-actions] cleaned up %d old actions", result.rowcount)
    return result.rowcount
