"""
Billing provider protocol.

Defines the interface for payment providers (Stripe, etc.) so the
subscription service never imports a provider SDK directly.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class BillingWebhookResult:
    """Provider event normalised onto our subscription fields."""
    event_id: str
    event_type: str
    team_id: Optional[str]
    external_subscription_id: Optional[str]
    external_customer_id: Optional[str]
    plan_slug: Optional[str]
    status: Optional[str]  # our SubscriptionStatus values
    current_period_end: Optional[datetime]
    cancel_at_period_end: Optional[bool]
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    def create_checkout_session(
        self,
        team_id: str,
        plan_slug: str,
        billing_interval: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> str:
        """
        Create a hosted checkout session for a subscription.

        Returns:
            Checkout session URL

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or parsing fails
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Exception for webhook processing errors."""
    pass
