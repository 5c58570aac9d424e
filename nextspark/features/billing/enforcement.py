"""
nextspark/features/billing/enforcement.py

Service-level billing checks.

Handles:
- can_perform_action: bypass roles, membership, subscription state, then
  the three-layer evaluator with live usage
- enforce_action: same decision, raised as an AppError
- check_downgrade: soft-limit report before a plan change
"""

import logging
from typing import Optional

from nextspark.core.errors import (
    FeatureNotInPlanError,
    PermissionError,
    QuotaExceededError,
)
from nextspark.features.billing import registry
from nextspark.features.billing.evaluator import ActionDecision, DenyReason, evaluate_action
from nextspark.features.billing.helpers import UNLIMITED, is_subscription_active
from nextspark.features.permissions.service import BYPASS_USER_ROLES
from nextspark.models.subscription import DowngradeCheck, OverLimit


logger = logging.getLogger(__name__)

DOWNGRADE_WARNING = "Some resources exceed new plan limits"


def can_perform_action(user_id: str, team_id: str, action: str, requested: int = 1) -> ActionDecision:
    """
    Decide whether `user_id` may perform `action` in `team_id`.

    Order: system bypass, team membership, active subscription, then
    permission -> feature -> quota.
    """
    from nextspark.features.billing.service import get_active_subscription, get_plan_by_id
    from nextspark.features.teams.members import get_member_role
    from nextspark.features.usage.service import get_current_usage
    from nextspark.features.users.service import get_system_role

    if get_system_role(user_id) in BYPASS_USER_ROLES:
        return ActionDecision(allowed=True)

    role = get_member_role(team_id, user_id)
    if role is None:
        return ActionDecision(allowed=False, reason=DenyReason.NO_PERMISSION)

    subscription = get_active_subscription(team_id)
    if not subscription or not is_subscription_active(subscription.status.value):
        return ActionDecision(allowed=False, reason=DenyReason.SUBSCRIPTION_INACTIVE)

    plan = get_plan_by_id(subscription.plan_id)
    decision = evaluate_action(
        action,
        role=role,
        plan_features=plan.features if plan else [],
        plan_limits=plan.limits if plan else {},
        usage_lookup=lambda limit_slug, _reset: get_current_usage(team_id, limit_slug),
        requested=requested,
    )
    if not decision.allowed:
        logger.warning(
            "[billing] action denied",
            extra={"user_id": user_id, "team_id": team_id, "action": action, "reason": decision.reason.value},
        )
    return decision


def enforce_action(user_id: str, team_id: str, action: str, requested: int = 1) -> ActionDecision:
    """Raise the AppError matching a denied decision; return it when allowed."""
    decision = can_perform_action(user_id, team_id, action, requested)
    if decision.allowed:
        return decision

    details = decision.to_dict()
    if decision.reason == DenyReason.FEATURE_NOT_IN_PLAN:
        raise FeatureNotInPlanError(f"Your plan does not include {decision.feature}", details=details)
    if decision.reason == DenyReason.QUOTA_EXCEEDED:
        raise QuotaExceededError(f"Quota exceeded for {decision.limit_slug}", details=details)
    if decision.reason == DenyReason.SUBSCRIPTION_INACTIVE:
        raise PermissionError("Subscription is not active", code="SUBSCRIPTION_INACTIVE", details=details)
    raise PermissionError(f"Permission denied for {action}", details=details)


def check_downgrade(team_id: str, target_plan_slug: str) -> DowngradeCheck:
    """
    Compare current usage with the target plan's limits.

    Downgrades are never refused; exceeded limits come back as
    over_limits plus a warning.
    """
    from nextspark.features.billing.service import get_plan_by_slug
    from nextspark.features.usage.service import get_current_usage

    target = get_plan_by_slug(target_plan_slug)
    target_limits = target.limits if target else registry.get_plan_config(target_plan_slug).get("limits", {})

    over_limits = []
    for limit_slug, config in registry.LIMITS.items():
        new_max = registry.get_limit_value(target_limits, limit_slug)
        if new_max == UNLIMITED:
            continue
        current = get_current_usage(team_id, limit_slug)
        if current > new_max:
            over_limits.append(
                OverLimit(
                    limit_slug=limit_slug,
                    limit_name=config["name"],
                    current=current,
                    new_max=new_max,
                    excess=current - new_max,
                )
            )

    return DowngradeCheck(
        can_downgrade=True,
        over_limits=over_limits,
        warnings=[DOWNGRADE_WARNING] if over_limits else [],
    )
