"""
nextspark/features/scheduled_actions/scheduler.py

Enqueue, deduplicate and cancel scheduled actions.

Deduplication: a one-time action whose payload carries an entityId
replaces the payload of a pending action of the same type for the same
entity created inside the dedup window (latest payload wins). Recurring
actions are never deduplicated. On PostgreSQL the check runs under a
transaction-scoped advisory lock keyed on (action_type, entityId), so
concurrent saves of one entity enqueue a single action.

Recurring intervals are either a named interval (hourly, daily, ...) or a
five-field cron expression. "fixed" recurrence keeps the cadence of the
original schedule; "rolling" counts the interval from completion.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from croniter import croniter
from sqlalchemy import select, insert, update, func

from nextspark.core.config import settings
from nextspark.core.database import dialect_name, ensure_utc, get_db_session, new_id, scheduled_actions, utc_now
from nextspark.core.errors import ValidationError
from nextspark.models.scheduled_action import ScheduledAction


logger = logging.getLogger(__name__)

RECURRING_INTERVALS = {
    "every-5-minutes": timedelta(minutes=5),
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
}

RECURRENCE_TYPES = ("fixed", "rolling")

CANCELLED_MESSAGE = "Action cancelled by system"


def row_to_action(row) -> ScheduledAction:
    return ScheduledAction(
        id=row.id,
        action_type=row.action_type,
        status=row.status,
        payload=row.payload,
        team_id=row.team_id,
        scheduled_at=ensure_utc(row.scheduled_at),
        started_at=ensure_utc(row.started_at),
        completed_at=ensure_utc(row.completed_at),
        error_message=row.error_message,
        attempts=row.attempts,
        max_retries=row.max_retries,
        recurring_interval=row.recurring_interval,
        recurrence_type=row.recurrence_type,
        lock_group=row.lock_group,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def is_valid_interval(interval: str) -> bool:
    return interval in RECURRING_INTERVALS or croniter.is_valid(interval)


def next_run_at(interval: str, after: datetime) -> datetime:
    after = ensure_utc(after)
    if interval in RECURRING_INTERVALS:
        return after + RECURRING_INTERVALS[interval]
    if croniter.is_valid(interval):
        return croniter(interval, after).get_next(datetime)
    raise ValidationError(f"Unsupported recurring interval: {interval}")


def _acquire_dedup_lock(session, action_type: str, entity_id: str) -> None:
    """Serialize dedup checks for one entity until the transaction ends (PostgreSQL only)."""
    if dialect_name() != "postgresql":
        return
    session.execute(select(func.pg_advisory_xact_lock(func.hashtext(f"{action_type}:{entity_id}"))))


def _find_duplicate(session, action_type: str, entity_id: str, team_id: Optional[str], now: datetime):
    window_start = now - timedelta(seconds=settings.SCHEDULED_ACTIONS_DEDUP_WINDOW_SECONDS)
    stmt = (
        select(scheduled_actions)
        .where(scheduled_actions.c.action_type == action_type)
        .where(scheduled_actions.c.status == "pending")
        .where(scheduled_actions.c.recurring_interval.is_(None))
        .where(scheduled_actions.c.created_at >= window_start)
        .order_by(scheduled_actions.c.created_at.desc())
    )
    if team_id:
        stmt = stmt.where(scheduled_actions.c.team_id == team_id)
    for row in session.execute(stmt).fetchall():
        if (row.payload or {}).get("entityId") == entity_id:
            return row
    return None


def schedule_action(
    action_type: str,
    payload: Optional[Dict[str, Any]] = None,
    *,
    team_id: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    recurring_interval: Optional[str] = None,
    recurrence_type: Optional[str] = None,
    lock_group: Optional[str] = None,
    max_retries: int = 3,
) -> str:
    """Enqueue an action; returns its id (the existing id when deduplicated)."""
    if recurring_interval and not is_valid_interval(recurring_interval):
        raise ValidationError(f"Unsupported recurring interval: {recurring_interval}")
    if recurrence_type and recurrence_type not in RECURRENCE_TYPES:
        raise ValidationError(f"recurrence_type must be one of {', '.join(RECURRENCE_TYPES)}")
    if max_retries < 0:
        raise ValidationError("max_retries must be >= 0")

    payload = payload or {}
    now = utc_now()
    entity_id = payload.get("entityId")
    dedupe = bool(entity_id) and not recurring_interval and settings.SCHEDULED_ACTIONS_DEDUP_WINDOW_SECONDS > 0

    with get_db_session() as session:
        if dedupe:
            _acquire_dedup_lock(session, action_type, entity_id)
            existing = _find_duplicate(session, action_type, entity_id, team_id, now)
            if existing:
                session.execute(
                    update(scheduled_actions)
                    .where(scheduled_actions.c.id == existing.id)
                    .values(payload=payload, updated_at=now)
                )
                logger.info(
                    "[scheduled-actions] deduplicated %s for entity %s", action_type, entity_id,
                    extra={"team_id": team_id},
                )
                return existing.id

        action_id = new_id()
        session.execute(
            insert(scheduled_actions).values(
                id=action_id,
                action_type=action_type,
                status="pending",
                payload=payload,
                team_id=team_id,
                scheduled_at=ensure_utc(scheduled_at) if scheduled_at else now,
                attempts=0,
                max_retries=max_retries,
                recurring_interval=recurring_interval,
                recurrence_type=(recurrence_type or "fixed") if recurring_interval else None,
                lock_group=lock_group,
                created_at=now,
                updated_at=now,
            )
        )
    return action_id


def schedule_recurring_action(
    action_type: str,
    payload: Optional[Dict[str, Any]],
    interval: str,
    *,
    team_id: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    recurrence_type: str = "fixed",
    lock_group: Optional[str] = None,
) -> str:
    return schedule_action(
        action_type,
        payload,
        team_id=team_id,
        scheduled_at=scheduled_at,
        recurring_interval=interval,
        recurrence_type=recurrence_type,
        lock_group=lock_group,
    )


def update_action_payload(action_id: str, payload: Dict[str, Any]) -> None:
    """Persist handler progress so a retry sees it."""
    with get_db_session() as session:
        session.execute(
            update(scheduled_actions)
            .where(scheduled_actions.c.id == action_id)
            .values(payload=payload, updated_at=utc_now())
        )


def cancel_scheduled_action(action_id: str) -> bool:
    """Cancel a pending action. Returns False when it is not pending (or unknown)."""
    with get_db_session() as session:
        result = session.execute(
            update(scheduled_actions)
            .where(scheduled_actions.c.id == action_id)
            .where(scheduled_actions.c.status == "pending")
            .values(status="failed", error_message=CANCELLED_MESSAGE, updated_at=utc_now())
        )
    if result.rowcount == 0:
        logger.warning("[scheduled-actions] could not cancel %s (not pending)", action_id)
        return False
    return True


def get_scheduled_action(action_id: str) -> Optional[ScheduledAction]:
    with get_db_session() as session:
        row = session.execute(select(scheduled_actions).where(scheduled_actions.c.id == action_id)).first()
        return row_to_action(row) if row else None


def list_scheduled_actions(
    status: Optional[str] = None,
    action_type: Optional[str] = None,
    team_id: Optional[str] = None,
    limit: int = 50,
) -> List[ScheduledAction]:
    stmt = select(scheduled_actions)
    if status:
        stmt = stmt.where(scheduled_actions.c.status == status)
    if action_type:
        stmt = stmt.where(scheduled_actions.c.action_type == action_type)
    if team_id:
        stmt = stmt.where(scheduled_actions.c.team_id == team_id)
    with get_db_session() as session:
        rows = session.execute(stmt.order_by(scheduled_actions.c.scheduled_at.desc()).limit(limit)).fetchall()
    return [row_to_action(row) for row in rows]
