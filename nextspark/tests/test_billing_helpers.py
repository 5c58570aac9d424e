"""Tests for billing helper math and period handling."""

from datetime import datetime, timedelta, timezone

import pytest

from nextspark.features.billing.helpers import (
    UNLIMITED,
    calculate_percent_used,
    calculate_remaining,
    calculate_yearly_savings,
    format_price,
    get_next_reset_date,
    get_period_key,
    get_trial_days_remaining,
    has_feature,
    is_in_trial,
    is_subscription_active,
    within_quota,
)

NOW = datetime(2026, 3, 15, 10, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "period,expected",
    [("never", "all_time"), ("daily", "2026-03-15"), ("monthly", "2026-03"), ("yearly", "2026"), ("weird", "all_time")],
)
def test_period_keys(period, expected):
    assert get_period_key(period, NOW) == expected


def test_next_reset_dates():
    assert get_next_reset_date("daily", NOW) == datetime(2026, 3, 16, tzinfo=timezone.utc)
    assert get_next_reset_date("monthly", NOW) == datetime(2026, 4, 1, tzinfo=timezone.utc)
    assert get_next_reset_date("monthly", datetime(2026, 12, 5, tzinfo=timezone.utc)) == datetime(2027, 1, 1, tzinfo=timezone.utc)
    assert get_next_reset_date("yearly", NOW) == datetime(2027, 1, 1, tzinfo=timezone.utc)
    assert get_next_reset_date("never", NOW) is None


def test_percent_used_edges():
    assert calculate_percent_used(5, UNLIMITED) == 0
    assert calculate_percent_used(0, 0) == 100
    assert calculate_percent_used(1, 3) == 33
    assert calculate_percent_used(1, 8) == 13
    assert calculate_percent_used(50, 10) == 100


def test_remaining_never_negative():
    assert calculate_remaining(3, 10) == 7
    assert calculate_remaining(12, 10) == 0
    assert calculate_remaining(12, UNLIMITED) == UNLIMITED


def test_within_quota():
    assert within_quota(9, 10)
    assert not within_quota(10, 10)
    assert not within_quota(8, 10, requested=3)
    assert within_quota(10_000, UNLIMITED, requested=500)


def test_subscription_active_statuses():
    assert is_subscription_active("active")
    assert is_subscription_active("trialing")
    assert not is_subscription_active("canceled")
    assert not is_subscription_active(None)


def test_trial_helpers():
    ends = NOW + timedelta(days=2, hours=1)
    assert is_in_trial(ends, NOW)
    assert get_trial_days_remaining(ends, NOW) == 3
    assert not is_in_trial(NOW - timedelta(seconds=1), NOW)
    assert get_trial_days_remaining(None, NOW) == 0


def test_feature_wildcard_and_empty_list():
    assert has_feature(["*"], "anything")
    assert has_feature(["webhooks"], "webhooks")
    assert not has_feature(["webhooks"], "api_access")
    assert not has_feature([], "webhooks")
    assert not has_feature(None, "webhooks")


def test_price_formatting_and_savings():
    assert format_price(2900) == "$29.00"
    assert format_price(123456, "eur") == "€1,234.56"
    assert format_price(500, "jpy") == "5.00 JPY"
    assert calculate_yearly_savings(2900, 29000) == 17
    assert calculate_yearly_savings(0, 0) == 0
