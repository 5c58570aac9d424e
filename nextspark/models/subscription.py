from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest
from nextspark.models.plan import Plan


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    PAUSED = "paused"
    EXPIRED = "expired"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Subscription(ApiModel):
    id: str
    team_id: str
    plan_id: str
    status: SubscriptionStatus
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    external_subscription_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SubscriptionWithPlan(Subscription):
    plan: Plan


class QuotaInfo(ApiModel):
    """Usage vs limit snapshot; max == -1 means unlimited."""

    allowed: bool
    current: int
    max: int
    remaining: int
    percent_used: int


class OverLimit(ApiModel):
    limit_slug: str
    limit_name: str
    current: int
    new_max: int
    excess: int


class DowngradeCheck(ApiModel):
    """Downgrades are soft: always allowed, with warnings when over limits."""

    can_downgrade: bool = True
    over_limits: List[OverLimit] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class PlanChangeResult(ApiModel):
    success: bool
    subscription: Optional[Subscription] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class CheckActionRequest(ApiRequest):
    action: str = Field(min_length=1)


class ChangePlanRequest(ApiRequest):
    plan_slug: str = Field(min_length=1)
    billing_interval: BillingInterval = BillingInterval.MONTHLY


class CancelSubscriptionRequest(ApiRequest):
    immediate: bool = False


class CheckoutRequest(ApiRequest):
    plan_slug: str = Field(min_length=1)
    billing_interval: BillingInterval = BillingInterval.MONTHLY
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class LimitUsage(ApiModel):
    limit_slug: str
    limit_name: str
    reset_period: str
    current: int
    max: int
    remaining: int
    percent_used: int
    resets_at: Optional[datetime] = None
