"""
Billing API routes.

- GET  /api/v1/billing/plans: Public plan catalog (no auth)
- GET  /api/v1/billing/subscription: Team subscription with plan
- POST /api/v1/billing/check-action: Permission + feature + quota decision
- GET  /api/v1/billing/usage: Per-limit usage for the current periods
- POST /api/v1/billing/change-plan: Move to another plan (owner)
- POST /api/v1/billing/cancel: Cancel now or at period end (owner)
- POST /api/v1/billing/checkout: Stripe checkout session (owner)
- POST /api/v1/billing/webhooks/stripe: Signed Stripe webhooks (no auth)
"""
import logging

from fastapi import APIRouter, Depends, Request

from nextspark.core.auth import TeamContext, get_team_context, require_scope
from nextspark.core.config import settings
from nextspark.core.errors import AppError, NotFoundError, ValidationError
from nextspark.core.responses import api_response
from nextspark.features.billing import service
from nextspark.features.billing.enforcement import can_perform_action
from nextspark.features.billing.provider import BillingProviderError, BillingWebhookError
from nextspark.features.billing.stripe_provider import get_provider, process_webhook_result
from nextspark.features.teams.members import require_team_permission
from nextspark.features.usage.service import get_team_usage_summary
from nextspark.models.subscription import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CheckActionRequest,
    CheckoutRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

_read = [Depends(require_scope("billing:read"))]
_write = [Depends(require_scope("billing:write"))]


def _billing_disabled() -> AppError:
    return AppError(
        "Stripe is not configured. Set STRIPE_SECRET_KEY environment variable.",
        code="BILLING_DISABLED",
        status_code=503,
    )


@router.get("/plans")
def list_plans():
    return api_response([plan.to_api() for plan in service.list_plans(public_only=True)])


@router.get("/subscription", dependencies=_read)
def get_subscription(ctx: TeamContext = Depends(get_team_context)):
    subscription = service.get_subscription_with_plan(ctx.team_id)
    if not subscription:
        raise NotFoundError("No subscription found", code="SUBSCRIPTION_NOT_FOUND")
    return api_response(subscription.to_api())


@router.post("/check-action", dependencies=_read)
def check_action(body: CheckActionRequest, ctx: TeamContext = Depends(get_team_context)):
    decision = can_perform_action(ctx.user_id, ctx.team_id, body.action)
    return api_response(decision.to_dict())


@router.get("/usage", dependencies=_read)
def get_usage(ctx: TeamContext = Depends(get_team_context)):
    return api_response([item.to_api() for item in get_team_usage_summary(ctx.team_id)])


@router.post("/change-plan", dependencies=_write)
def change_plan(body: ChangePlanRequest, ctx: TeamContext = Depends(get_team_context)):
    require_team_permission(ctx.team_id, ctx.user_id, "team.billing.manage")
    result = service.change_plan(ctx.team_id, body.plan_slug, body.billing_interval)
    if not result.success:
        raise ValidationError(result.error or "Plan change failed", code="PLAN_CHANGE_FAILED")
    return api_response(result.to_api())


@router.post("/cancel", dependencies=_write)
def cancel(body: CancelSubscriptionRequest, ctx: TeamContext = Depends(get_team_context)):
    require_team_permission(ctx.team_id, ctx.user_id, "team.billing.manage")
    return api_response(service.cancel_subscription(ctx.team_id, immediate=body.immediate).to_api())


@router.post("/checkout", dependencies=_write)
def create_checkout(body: CheckoutRequest, ctx: TeamContext = Depends(get_team_context)):
    """
    Create Stripe checkout session.

    Errors:
        503: Billing disabled (STRIPE_SECRET_KEY not set)
        404: Unknown plan
        502: Stripe API error
    """
    require_team_permission(ctx.team_id, ctx.user_id, "team.billing.manage")
    provider = get_provider()
    if provider is None:
        raise _billing_disabled()
    if not service.get_plan_by_slug(body.plan_slug):
        raise NotFoundError(f"Plan not found: {body.plan_slug}", code="PLAN_NOT_FOUND")

    try:
        url = provider.create_checkout_session(
            team_id=ctx.team_id,
            plan_slug=body.plan_slug,
            billing_interval=body.billing_interval.value,
            success_url=body.success_url or f"{settings.BASE_URL}/billing?checkout=success",
            cancel_url=body.cancel_url or f"{settings.BASE_URL}/billing?checkout=cancel",
        )
    except BillingProviderError as e:
        raise AppError(str(e), code="BILLING_PROVIDER_ERROR", status_code=502)
    return api_response({"url": url})


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request):
    """Verify and apply a Stripe event; bad signatures get 400."""
    provider = get_provider()
    if provider is None:
        raise _billing_disabled()

    body = await request.body()
    try:
        result = provider.handle_webhook(dict(request.headers), body)
    except BillingWebhookError as e:
        logger.warning(f"[billing] webhook rejected: {e}")
        raise ValidationError(str(e), code="INVALID_WEBHOOK")

    subscription = process_webhook_result(result)
    logger.info(
        "[billing] webhook processed",
        extra={"event_type": result.event_type, "team_id": result.team_id},
    )
    return api_response(
        {
            "received": True,
            "eventId": result.event_id,
            "eventType": result.event_type,
            "subscriptionId": subscription.id if subscription else None,
        }
    )
