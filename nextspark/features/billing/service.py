"""
nextspark/features/billing/service.py

Plan catalogue and subscription lifecycle.

Handles:
- Plan seeding (free, pro, enterprise) from the registry
- One active subscription per team (active | trialing | past_due)
- Status transitions: cancel, pause, resume, plan change
- Subscription webhook events (subscription:created|updated|cancelled)
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import select, insert, update, func

from nextspark.core.database import (
    get_db_session,
    ensure_utc,
    new_id,
    utc_now,
    plans,
    subscriptions,
)
from nextspark.core.errors import NotFoundError, ValidationError
from nextspark.features.billing import registry
from nextspark.features.billing.helpers import ACTIVE_STATUSES
from nextspark.models.plan import Plan
from nextspark.models.subscription import (
    BillingInterval,
    PlanChangeResult,
    Subscription,
    SubscriptionStatus,
    SubscriptionWithPlan,
)


logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    BillingInterval.MONTHLY.value: 30,
    BillingInterval.YEARLY.value: 365,
}


def _normalize_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now else utc_now()


def _interval_value(interval: Union[BillingInterval, str, None]) -> str:
    if interval is None:
        return BillingInterval.MONTHLY.value
    value = interval.value if isinstance(interval, BillingInterval) else str(interval)
    if value not in PERIOD_DAYS:
        raise ValidationError(f"Invalid billing interval: {value}")
    return value


def _row_to_plan(row) -> Plan:
    return Plan(
        id=row.id,
        slug=row.slug,
        name=row.name,
        type=row.type,
        price_monthly=row.price_monthly,
        price_yearly=row.price_yearly,
        trial_days=row.trial_days,
        features=list(row.features or []),
        limits=dict(row.limits or {}),
        sort_order=row.sort_order,
        is_public=bool(row.is_public),
        is_default=bool(row.is_default),
        created_at=ensure_utc(row.created_at),
    )


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        team_id=row.team_id,
        plan_id=row.plan_id,
        status=row.status,
        billing_interval=row.billing_interval,
        current_period_start=ensure_utc(row.current_period_start),
        current_period_end=ensure_utc(row.current_period_end),
        trial_ends_at=ensure_utc(row.trial_ends_at),
        cancel_at_period_end=bool(row.cancel_at_period_end),
        canceled_at=ensure_utc(row.canceled_at),
        external_subscription_id=row.external_subscription_id,
        external_customer_id=row.external_customer_id,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _emit(action: str, subscription: Subscription) -> None:
    from nextspark.features.webhooks.service import schedule_entity_webhook

    schedule_entity_webhook(
        "subscription",
        action,
        subscription.id,
        subscription.to_api(),
        team_id=subscription.team_id,
    )


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def seed_plans() -> None:
    """
    Seed default plans into the database (idempotent).

    Existing plans are left untouched so operators can edit prices
    and limits without a deploy resetting them.
    """
    with get_db_session() as session:
        for slug, config in registry.DEFAULT_PLANS.items():
            existing = session.execute(select(plans.c.id).where(plans.c.slug == slug)).first()
            if existing:
                continue
            session.execute(
                insert(plans).values(
                    id=new_id(),
                    slug=slug,
                    name=config["name"],
                    type=config["type"],
                    price_monthly=config["price_monthly"],
                    price_yearly=config["price_yearly"],
                    trial_days=config["trial_days"],
                    features=list(config["features"]),
                    limits=dict(config["limits"]),
                    sort_order=config["sort_order"],
                    is_public=config["is_public"],
                    is_default=config["is_default"],
                )
            )
    logger.info("[billing] plans seeded", extra={"plans": list(registry.DEFAULT_PLANS)})


def list_plans(public_only: bool = True) -> List[Plan]:
    with get_db_session() as session:
        stmt = select(plans).order_by(plans.c.sort_order)
        if public_only:
            stmt = stmt.where(plans.c.is_public.is_(True))
        return [_row_to_plan(row) for row in session.execute(stmt).fetchall()]


def get_plan_by_slug(slug: str) -> Optional[Plan]:
    with get_db_session() as session:
        row = session.execute(select(plans).where(plans.c.slug == slug)).first()
        return _row_to_plan(row) if row else None


def get_plan_by_id(plan_id: str) -> Optional[Plan]:
    with get_db_session() as session:
        row = session.execute(select(plans).where(plans.c.id == plan_id)).first()
        return _row_to_plan(row) if row else None


def get_default_plan() -> Optional[Plan]:
    with get_db_session() as session:
        row = session.execute(
            select(plans).where(plans.c.is_default.is_(True)).order_by(plans.c.sort_order)
        ).first()
        if row:
            return _row_to_plan(row)
    return get_plan_by_slug(registry.DEFAULT_PLAN_SLUG)


def _require_plan(slug: str) -> Plan:
    plan = get_plan_by_slug(slug)
    if not plan:
        raise NotFoundError(f"Plan not found: {slug}", code="PLAN_NOT_FOUND")
    return plan


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


def get_active_subscription(team_id: str) -> Optional[Subscription]:
    """Most recent subscription in an active state, if any."""
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions)
            .where(subscriptions.c.team_id == team_id)
            .where(subscriptions.c.status.in_(ACTIVE_STATUSES))
            .order_by(subscriptions.c.created_at.desc())
        ).first()
        return _row_to_subscription(row) if row else None


def get_latest_subscription(team_id: str) -> Optional[Subscription]:
    """Most recent subscription in any state (paused and canceled included)."""
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions)
            .where(subscriptions.c.team_id == team_id)
            .order_by(subscriptions.c.created_at.desc())
        ).first()
        return _row_to_subscription(row) if row else None


def get_subscription(subscription_id: str) -> Optional[Subscription]:
    with get_db_session() as session:
        row = session.execute(select(subscriptions).where(subscriptions.c.id == subscription_id)).first()
        return _row_to_subscription(row) if row else None


def get_subscription_by_external_id(external_subscription_id: str) -> Optional[Subscription]:
    with get_db_session() as session:
        row = session.execute(
            select(subscriptions).where(subscriptions.c.external_subscription_id == external_subscription_id)
        ).first()
        return _row_to_subscription(row) if row else None


def get_subscription_with_plan(team_id: str) -> Optional[SubscriptionWithPlan]:
    subscription = get_active_subscription(team_id) or get_latest_subscription(team_id)
    if not subscription:
        return None
    plan = get_plan_by_id(subscription.plan_id)
    if not plan:
        return None
    return SubscriptionWithPlan(**subscription.model_dump(), plan=plan)


def get_plan_for_team(team_id: str) -> Optional[Plan]:
    """Plan of the team's active subscription, falling back to the default plan."""
    subscription = get_active_subscription(team_id)
    if subscription:
        plan = get_plan_by_id(subscription.plan_id)
        if plan:
            return plan
    return get_default_plan()


def create_subscription(
    team_id: str,
    plan_slug: str,
    billing_interval: Union[BillingInterval, str, None] = None,
    trial_days: Optional[int] = None,
    now: Optional[datetime] = None,
    external_subscription_id: Optional[str] = None,
    external_customer_id: Optional[str] = None,
) -> Subscription:
    """
    Create a subscription for a team.

    A positive trial (explicit or the plan's trial_days) starts the
    subscription as trialing; otherwise it is active immediately.
    """
    plan = _require_plan(plan_slug)
    interval = _interval_value(billing_interval)
    now = _normalize_now(now)
    days = plan.trial_days if trial_days is None else trial_days
    if days < 0:
        raise ValidationError("trial_days must be >= 0")

    trial_ends_at = now + timedelta(days=days) if days > 0 else None
    status = SubscriptionStatus.TRIALING if trial_ends_at else SubscriptionStatus.ACTIVE
    subscription_id = new_id()

    with get_db_session() as session:
        session.execute(
            insert(subscriptions).values(
                id=subscription_id,
                team_id=team_id,
                plan_id=plan.id,
                status=status.value,
                billing_interval=interval,
                current_period_start=now,
                current_period_end=now + timedelta(days=PERIOD_DAYS[interval]),
                trial_ends_at=trial_ends_at,
                cancel_at_period_end=False,
                external_subscription_id=external_subscription_id,
                external_customer_id=external_customer_id,
                created_at=now,
                updated_at=now,
            )
        )

    subscription = get_subscription(subscription_id)
    logger.info(
        "[billing] subscription created",
        extra={"team_id": team_id, "plan": plan_slug, "status": status.value},
    )
    _emit("created", subscription)
    return subscription


def create_default_subscription(team_id: str, now: Optional[datetime] = None) -> Subscription:
    """Default plan, no trial."""
    plan = get_default_plan()
    slug = plan.slug if plan else registry.DEFAULT_PLAN_SLUG
    return create_subscription(team_id, slug, trial_days=0, now=now)


def _update(subscription_id: str, values: Dict) -> Subscription:
    with get_db_session() as session:
        result = session.execute(
            update(subscriptions).where(subscriptions.c.id == subscription_id).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
    return get_subscription(subscription_id)


def update_subscription_status(subscription_id: str, status: Union[SubscriptionStatus, str]) -> Subscription:
    try:
        status = SubscriptionStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid subscription status: {status}")

    values: Dict = {"status": status.value}
    if status == SubscriptionStatus.CANCELED:
        values["canceled_at"] = _normalize_now(None)
    subscription = _update(subscription_id, values)
    _emit("cancelled" if status == SubscriptionStatus.CANCELED else "updated", subscription)
    return subscription


def _require_active(team_id: str) -> Subscription:
    subscription = get_active_subscription(team_id)
    if not subscription:
        raise NotFoundError("No active subscription", code="SUBSCRIPTION_NOT_FOUND")
    return subscription


def cancel_subscription(team_id: str, immediate: bool = False) -> Subscription:
    """
    Cancel the team's active subscription.

    immediate=False only flags cancel_at_period_end; the subscription
    stays usable until the period ends.
    """
    subscription = _require_active(team_id)
    now = _normalize_now(None)
    if immediate:
        updated = _update(
            subscription.id,
            {"status": SubscriptionStatus.CANCELED.value, "canceled_at": now, "cancel_at_period_end": False},
        )
        _emit("cancelled", updated)
    else:
        updated = _update(subscription.id, {"cancel_at_period_end": True, "canceled_at": now})
        _emit("updated", updated)
    logger.info("[billing] subscription canceled", extra={"team_id": team_id, "immediate": immediate})
    return updated


def change_plan(
    team_id: str,
    plan_slug: str,
    billing_interval: Union[BillingInterval, str, None] = None,
) -> PlanChangeResult:
    """
    Move the active subscription to another plan.

    Downgrades are soft: limits that are already exceeded produce
    warnings, never a refusal.
    """
    from nextspark.features.billing.enforcement import check_downgrade

    subscription = get_active_subscription(team_id)
    if not subscription:
        return PlanChangeResult(success=False, error="No active subscription")
    target = get_plan_by_slug(plan_slug)
    if not target:
        return PlanChangeResult(success=False, error=f"Plan not found: {plan_slug}")

    downgrade = check_downgrade(team_id, plan_slug)
    values: Dict = {"plan_id": target.id, "cancel_at_period_end": False}
    if billing_interval is not None:
        values["billing_interval"] = _interval_value(billing_interval)
    updated = _update(subscription.id, values)
    _emit("updated", updated)
    logger.info(
        "[billing] plan changed",
        extra={"team_id": team_id, "plan": plan_slug, "over_limits": len(downgrade.over_limits)},
    )
    return PlanChangeResult(success=True, subscription=updated, warnings=downgrade.warnings)


def pause_subscription(team_id: str) -> Subscription:
    subscription = _require_active(team_id)
    if subscription.status != SubscriptionStatus.ACTIVE:
        raise ValidationError("Only active subscriptions can be paused")
    return update_subscription_status(subscription.id, SubscriptionStatus.PAUSED)


def resume_subscription(team_id: str) -> Subscription:
    subscription = get_latest_subscription(team_id)
    if not subscription or subscription.status != SubscriptionStatus.PAUSED:
        raise ValidationError("Only paused subscriptions can be resumed")
    return update_subscription_status(subscription.id, SubscriptionStatus.ACTIVE)


def list_subscriptions_by_status(status: Union[SubscriptionStatus, str]) -> List[Subscription]:
    try:
        status = SubscriptionStatus(status)
    except ValueError:
        raise ValidationError(f"Invalid subscription status: {status}")
    with get_db_session() as session:
        rows = session.execute(
            select(subscriptions)
            .where(subscriptions.c.status == status.value)
            .order_by(subscriptions.c.created_at)
        ).fetchall()
        return [_row_to_subscription(row) for row in rows]


def list_expiring_soon(days: int = 7, now: Optional[datetime] = None) -> List[Subscription]:
    """Active subscriptions whose period or trial ends within `days`."""
    now = _normalize_now(now)
    horizon = now + timedelta(days=days)
    with get_db_session() as session:
        rows = session.execute(
            select(subscriptions).where(subscriptions.c.status.in_(ACTIVE_STATUSES))
        ).fetchall()

    expiring = []
    for row in rows:
        sub = _row_to_subscription(row)
        ends = sub.trial_ends_at if sub.status == SubscriptionStatus.TRIALING else sub.current_period_end
        if ends and now <= ends <= horizon:
            expiring.append(sub)
    return sorted(expiring, key=lambda s: s.current_period_end or now)


def count_subscriptions_by_plan() -> Dict[str, int]:
    """Active subscription count per plan slug."""
    with get_db_session() as session:
        rows = session.execute(
            select(plans.c.slug, func.count(subscriptions.c.id))
            .select_from(subscriptions.join(plans, subscriptions.c.plan_id == plans.c.id))
            .where(subscriptions.c.status.in_(ACTIVE_STATUSES))
            .group_by(plans.c.slug)
        ).fetchall()
        return {slug: int(count) for slug, count in rows}


def sync_external_subscription(
    external_subscription_id: str,
    *,
    status: Optional[str] = None,
    team_id: Optional[str] = None,
    plan_slug: Optional[str] = None,
    current_period_end: Optional[datetime] = None,
    cancel_at_period_end: Optional[bool] = None,
    external_customer_id: Optional[str] = None,
) -> Optional[Subscription]:
    """
    Apply a payment provider's view of a subscription.

    Looks the subscription up by its external id, then falls back to the
    team's active subscription (first checkout) and links it.
    """
    subscription = get_subscription_by_external_id(external_subscription_id)
    if not subscription and team_id:
        subscription = get_active_subscription(team_id)
    if not subscription:
        logger.warning(
            "[billing] external subscription not matched",
            extra={"external_subscription_id": external_subscription_id, "team_id": team_id},
        )
        return None

    values: Dict = {"external_subscription_id": external_subscription_id}
    if external_customer_id:
        values["external_customer_id"] = external_customer_id
    if current_period_end:
        values["current_period_end"] = ensure_utc(current_period_end)
    if cancel_at_period_end is not None:
        values["cancel_at_period_end"] = cancel_at_period_end
    if plan_slug:
        plan = get_plan_by_slug(plan_slug)
        if plan:
            values["plan_id"] = plan.id
    if status:
        try:
            values["status"] = SubscriptionStatus(status).value
        except ValueError:
            logger.warning("[billing] ignoring unknown provider status", extra={"status": status})
        if values.get("status") == SubscriptionStatus.CANCELED.value:
            values["canceled_at"] = _normalize_now(None)

    updated = _update(subscription.id, values)
    _emit("cancelled" if updated.status == SubscriptionStatus.CANCELED else "updated", updated)
    return updated
