"""
nextspark/features/billing/evaluator.py

Three-layer action evaluator.

    allowed = has_permission(role, action)
              AND has_feature(plan_features, action)
              AND within_quota(usage, limit)

Each layer only applies when the action appears in the matching
ACTION_MAPPINGS table; an action mapped nowhere is allowed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional
import logging

from nextspark.features.billing import registry
from nextspark.features.billing.helpers import (
    UNLIMITED,
    calculate_percent_used,
    calculate_remaining,
    has_feature,
    within_quota,
)
from nextspark.features.permissions import service as permissions
from nextspark.models.subscription import QuotaInfo


logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    NO_PERMISSION = "no_permission"
    FEATURE_NOT_IN_PLAN = "feature_not_in_plan"
    QUOTA_EXCEEDED = "quota_exceeded"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"


@dataclass(frozen=True)
class ActionDecision:
    allowed: bool
    reason: Optional[DenyReason] = None
    permission: Optional[str] = None
    feature: Optional[str] = None
    limit_slug: Optional[str] = None
    quota: Optional[QuotaInfo] = None

    def to_dict(self) -> Dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "permission": self.permission,
            "feature": self.feature,
            "limitSlug": self.limit_slug,
            "quota": self.quota.to_api() if self.quota else None,
        }


# (limit_slug, reset_period) -> current usage
UsageLookup = Callable[[str, str], int]


def build_quota(current: int, max_value: int, requested: int = 1) -> QuotaInfo:
    return QuotaInfo(
        allowed=within_quota(current, max_value, requested),
        current=current,
        max=max_value,
        remaining=calculate_remaining(current, max_value),
        percent_used=calculate_percent_used(current, max_value),
    )


def evaluate_action(
    action: str,
    *,
    role,
    plan_features: Optional[Iterable[str]],
    plan_limits: Optional[Dict[str, int]] = None,
    usage_lookup: Optional[UsageLookup] = None,
    requested: int = 1,
    mappings: Optional[Dict] = None,
) -> ActionDecision:
    """Evaluate the RBAC, feature and quota layers in order."""
    table = mappings or registry.ACTION_MAPPINGS

    required_permission = table.get("permissions", {}).get(action)
    if required_permission and not permissions.has_permission(role, required_permission):
        return ActionDecision(allowed=False, reason=DenyReason.NO_PERMISSION, permission=required_permission)

    required_feature = table.get("features", {}).get(action)
    if required_feature and not has_feature(plan_features, required_feature):
        return ActionDecision(allowed=False, reason=DenyReason.FEATURE_NOT_IN_PLAN, feature=required_feature)

    limit_slug = table.get("limits", {}).get(action)
    if not limit_slug:
        return ActionDecision(allowed=True)

    max_value = registry.get_limit_value(plan_limits or {}, limit_slug)
    if max_value == UNLIMITED:
        return ActionDecision(allowed=True, limit_slug=limit_slug, quota=build_quota(0, UNLIMITED, requested))

    reset_period = registry.get_limit_config(limit_slug).get("reset_period", "never")
    current = usage_lookup(limit_slug, reset_period) if usage_lookup else 0
    quota = build_quota(current, max_value, requested)
    if not quota.allowed:
        logger.warning(
            "[billing] QUOTA_EXCEEDED",
            extra={"action": action, "limit_slug": limit_slug, "current": current, "max": max_value},
        )
        return ActionDecision(allowed=False, reason=DenyReason.QUOTA_EXCEEDED, limit_slug=limit_slug, quota=quota)
    return ActionDecision(allowed=True, limit_slug=limit_slug, quota=quota)
