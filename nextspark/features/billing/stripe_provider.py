"""
Stripe billing provider implementation.

Implements BillingProvider using the Stripe API: hosted checkout for a
plan/interval and signed webhooks mapped onto subscription status.

Price ids come from the environment: STRIPE_PRICE_<PLAN>_<INTERVAL>,
e.g. STRIPE_PRICE_PRO_MONTHLY.
"""
import os
import logging
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import stripe

from nextspark.core.config import settings
from nextspark.features.billing.registry import DEFAULT_PLANS
from nextspark.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)


logger = logging.getLogger(__name__)

# Stripe subscription status -> our SubscriptionStatus
STATUS_MAP = {
    "trialing": "trialing",
    "active": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "expired",
    "paused": "paused",
}


def price_env_var(plan_slug: str, billing_interval: str) -> str:
    return f"STRIPE_PRICE_{plan_slug.upper()}_{billing_interval.upper()}"


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        team_id: str,
        plan_slug: str,
        billing_interval: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> str:
        """Create Stripe checkout session."""
        price_id = os.getenv(price_env_var(plan_slug, billing_interval))
        if not price_id:
            raise BillingProviderError(f"{price_env_var(plan_slug, billing_interval)} not configured")

        metadata = {"team_id": team_id, "plan_slug": plan_slug, "billing_interval": billing_interval}
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": team_id,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(**params)
            return session.url
        except stripe.error.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.error.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        return self.parse_event(event)

    def parse_event(self, event: Dict[str, Any]) -> BillingWebhookResult:
        """Parse Stripe event into normalized BillingWebhookResult."""
        event_type = event["type"]
        data = event.get("data", {}).get("object", {}) or {}
        metadata = data.get("metadata") or {}

        result = BillingWebhookResult(
            event_id=event["id"],
            event_type=event_type,
            team_id=metadata.get("team_id"),
            external_subscription_id=None,
            external_customer_id=data.get("customer"),
            plan_slug=metadata.get("plan_slug"),
            status=None,
            current_period_end=None,
            cancel_at_period_end=None,
            metadata=metadata,
        )

        if event_type == "checkout.session.completed":
            result.external_subscription_id = data.get("subscription")
            result.team_id = result.team_id or data.get("client_reference_id")
            result.status = "active"
        elif event_type.startswith("customer.subscription."):
            result.external_subscription_id = data.get("id")
            if event_type == "customer.subscription.deleted":
                result.status = "canceled"
            else:
                result.status = STATUS_MAP.get(data.get("status"))
            result.cancel_at_period_end = data.get("cancel_at_period_end")
            period_end_ts = data.get("current_period_end")
            if period_end_ts:
                result.current_period_end = datetime.fromtimestamp(period_end_ts, tz=timezone.utc)
            if not result.plan_slug:
                items = (data.get("items") or {}).get("data") or []
                if items:
                    result.plan_slug = self._map_price_to_plan((items[0].get("price") or {}).get("id"))

        return result

    def _map_price_to_plan(self, price_id: Optional[str]) -> Optional[str]:
        """Map Stripe price ID back to a plan slug via STRIPE_PRICE_* variables."""
        if not price_id:
            return None
        for slug in DEFAULT_PLANS:
            for interval in ("monthly", "yearly"):
                if os.getenv(price_env_var(slug, interval)) == price_id:
                    return slug
        return None


def billing_enabled() -> bool:
    """Billing is enabled when Stripe is configured."""
    return bool(settings.STRIPE_SECRET_KEY)


def get_provider() -> Optional[StripeProvider]:
    if not billing_enabled():
        return None
    return StripeProvider()


def process_webhook_result(result: BillingWebhookResult):
    """Apply a parsed provider event to the matching subscription."""
    from nextspark.features.billing.service import sync_external_subscription

    if not result.external_subscription_id:
        logger.info("[billing] ignoring provider event %s", result.event_type)
        return None
    return sync_external_subscription(
        result.external_subscription_id,
        status=result.status,
        team_id=result.team_id,
        plan_slug=result.plan_slug,
        current_period_end=result.current_period_end,
        cancel_at_period_end=result.cancel_at_period_end,
        external_customer_id=result.external_customer_id,
    )
