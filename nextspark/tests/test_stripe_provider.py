"""Tests for the Stripe billing provider event mapping."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from nextspark.core.config import settings
from nextspark.core.database import get_db_session, subscriptions
from nextspark.features.billing import stripe_provider
from nextspark.features.billing.provider import BillingProviderError, BillingWebhookError
from nextspark.features.billing.service import get_active_subscription, get_plan_for_team


@pytest.fixture
def provider(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_123")
    return stripe_provider.StripeProvider()


def test_price_env_var():
    assert stripe_provider.price_env_var("pro", "monthly") == "STRIPE_PRICE_PRO_MONTHLY"


def test_billing_disabled_without_key(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    assert stripe_provider.billing_enabled() is False
    assert stripe_provider.get_provider() is None
    with pytest.raises(BillingProviderError):
        stripe_provider.StripeProvider()


def test_checkout_requires_price(provider, monkeypatch):
    monkeypatch.delenv("STRIPE_PRICE_PRO_YEARLY", raising=False)
    with pytest.raises(BillingProviderError, match="STRIPE_PRICE_PRO_YEARLY"):
        provider.create_checkout_session("team-1", "pro", "yearly", "https://ok", "https://cancel")


def test_webhook_requires_signature(provider):
    with pytest.raises(BillingWebhookError, match="stripe-signature"):
        provider.handle_webhook({}, b"{}")


def test_parse_checkout_completed(provider):
    result = provider.parse_event(
        {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {"subscription": "sub_1", "customer": "cus_1", "client_reference_id": "team-1", "metadata": {}}},
        }
    )
    assert result.team_id == "team-1"
    assert result.external_subscription_id == "sub_1"
    assert result.status == "active"


def test_parse_subscription_update_maps_status_and_price(provider, monkeypatch):
    monkeypatch.setenv("STRIPE_PRICE_PRO_MONTHLY", "price_pro_m")
    result = provider.parse_event(
        {
            "id": "evt_2",
            "type": "customer.subscription.updated",
            "data": {
                "object": {
                    "id": "sub_1",
                    "status": "unpaid",
                    "cancel_at_period_end": True,
                    "current_period_end": 1767225600,
                    "items": {"data": [{"price": {"id": "price_pro_m"}}]},
                }
            },
        }
    )
    assert result.status == "past_due"
    assert result.plan_slug == "pro"
    assert result.cancel_at_period_end is True
    assert result.current_period_end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_parse_subscription_deleted(provider):
    result = provider.parse_event(
        {"id": "evt_3", "type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1", "status": "active"}}}
    )
    assert result.status == "canceled"


def test_process_webhook_result_syncs_subscription(team, provider):
    with get_db_session() as session:
        session.execute(
            update(subscriptions).where(subscriptions.c.team_id == team.id).values(external_subscription_id="sub_1")
        )
    result = provider.parse_event(
        {
            "id": "evt_4",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_1", "status": "past_due", "metadata": {"plan_slug": "pro"}}},
        }
    )
    stripe_provider.process_webhook_result(result)
    assert get_active_subscription(team.id).status == "past_due"
    assert get_plan_for_team(team.id).slug == "pro"


def test_process_webhook_result_ignores_unrelated_events(provider):
    result = provider.parse_event({"id": "evt_5", "type": "invoice.paid", "data": {"object": {}}})
    assert stripe_provider.process_webhook_result(result) is None
