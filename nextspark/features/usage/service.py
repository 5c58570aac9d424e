"""
nextspark/features/usage/service.py

Usage counters backing the quota layer.

Handles:
- Counter upserts keyed by (subscription_id, limit_slug, period_key)
- Current usage and quota snapshots
- Team usage summary and near-quota listing
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from nextspark.core.database import get_db_session, new_id, usage, utc_now
from nextspark.features.billing import registry
from nextspark.features.billing.evaluator import build_quota
from nextspark.features.billing.helpers import (
    get_next_reset_date,
    get_period_key,
)
from nextspark.models.subscription import LimitUsage, QuotaInfo


logger = logging.getLogger(__name__)


def _period_key_for(limit_slug: str, now: Optional[datetime] = None) -> str:
    reset_period = registry.get_limit_config(limit_slug).get("reset_period", "never")
    return get_period_key(reset_period, now)


def _active_subscription_id(team_id: str) -> Optional[str]:
    from nextspark.features.billing.service import get_active_subscription

    subscription = get_active_subscription(team_id)
    return subscription.id if subscription else None


def _read_value(session, subscription_id: str, limit_slug: str, period_key: str) -> Optional[int]:
    row = session.execute(
        select(usage.c.current_value)
        .where(usage.c.subscription_id == subscription_id)
        .where(usage.c.limit_slug == limit_slug)
        .where(usage.c.period_key == period_key)
    ).first()
    return int(row[0]) if row else None


def track_usage(team_id: str, limit_slug: str, delta: int = 1, now: Optional[datetime] = None) -> int:
    """
    Add `delta` (may be negative) to the team's counter for the current period.

    Counters never go below zero. Teams without an active subscription
    are not tracked; returns the new value (0 when untracked).
    """
    subscription_id = _active_subscription_id(team_id)
    if not subscription_id:
        logger.warning("[usage] no active subscription, not tracked", extra={"team_id": team_id, "limit_slug": limit_slug})
        return 0

    period_key = _period_key_for(limit_slug, now)
    for _ in range(2):
        try:
            with get_db_session() as session:
                current = _read_value(session, subscription_id, limit_slug, period_key)
                if current is None:
                    new_value = max(0, delta)
                    session.execute(
                        insert(usage).values(
                            id=new_id(),
                            team_id=team_id,
                            subscription_id=subscription_id,
                            limit_slug=limit_slug,
                            period_key=period_key,
                            current_value=new_value,
                            updated_at=utc_now(),
                        )
                    )
                else:
                    new_value = max(0, current + delta)
                    session.execute(
                        update(usage)
                        .where(usage.c.subscription_id == subscription_id)
                        .where(usage.c.limit_slug == limit_slug)
                        .where(usage.c.period_key == period_key)
                        .values(current_value=new_value, updated_at=utc_now())
                    )
            return new_value
        except IntegrityError:
            # Concurrent first insert for the same period; retry as an update
            continue
    raise RuntimeError(f"Could not track usage for {limit_slug}")


def get_current_usage(team_id: str, limit_slug: str, now: Optional[datetime] = None) -> int:
    subscription_id = _active_subscription_id(team_id)
    if not subscription_id:
        return 0
    with get_db_session() as session:
        return _read_value(session, subscription_id, limit_slug, _period_key_for(limit_slug, now)) or 0


def _plan_limits(team_id: str) -> dict:
    from nextspark.features.billing.service import get_plan_for_team

    plan = get_plan_for_team(team_id)
    return plan.limits if plan else {}


def check_quota(team_id: str, limit_slug: str, requested: int = 1, now: Optional[datetime] = None) -> QuotaInfo:
    max_value = registry.get_limit_value(_plan_limits(team_id), limit_slug)
    return build_quota(get_current_usage(team_id, limit_slug, now), max_value, requested)


def get_team_usage_summary(team_id: str, now: Optional[datetime] = None) -> List[LimitUsage]:
    """Every registered limit with current usage against the team's plan."""
    limits = _plan_limits(team_id)
    summary = []
    for limit_slug, config in registry.LIMITS.items():
        max_value = registry.get_limit_value(limits, limit_slug)
        quota = build_quota(get_current_usage(team_id, limit_slug, now), max_value)
        summary.append(
            LimitUsage(
                limit_slug=limit_slug,
                limit_name=config["name"],
                reset_period=config["reset_period"],
                current=quota.current,
                max=quota.max,
                remaining=quota.remaining,
                percent_used=quota.percent_used,
                resets_at=get_next_reset_date(config["reset_period"], now),
            )
        )
    return summary


def list_near_quota(team_id: str, threshold: int = 80, now: Optional[datetime] = None) -> List[LimitUsage]:
    """Limits at or above `threshold` percent; unlimited and zero limits are skipped."""
    return [
        item
        for item in get_team_usage_summary(team_id, now)
        if item.max > 0 and item.percent_used >= threshold
    ]
