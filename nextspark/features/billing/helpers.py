"""
nextspark/features/billing/helpers.py

Pure billing helpers: usage periods, quota arithmetic, subscription status
checks, feature lookup and price formatting. No database access.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from nextspark.core.database import ensure_utc


UNLIMITED = -1

# Statuses that still grant access to the plan
ACTIVE_STATUSES = ("active", "trialing", "past_due")

CURRENCY_SYMBOLS = {
    "usd": "$",
    "eur": "€",
    "gbp": "£",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else datetime.now(timezone.utc)


def get_period_key(reset_period: str, now: Optional[datetime] = None) -> str:
    """Bucket key for usage rows.

    never -> 'all_time', daily -> 'YYYY-MM-DD', monthly -> 'YYYY-MM',
    yearly -> 'YYYY'. Unknown periods fall back to 'all_time'.
    """
    current = _now(now)
    if reset_period == "daily":
        return current.strftime("%Y-%m-%d")
    if reset_period == "monthly":
        return current.strftime("%Y-%m")
    if reset_period == "yearly":
        return current.strftime("%Y")
    return "all_time"


def get_next_reset_date(reset_period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of the next period (UTC midnight), or None for never/unknown."""
    current = _now(now)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    if reset_period == "daily":
        return midnight + timedelta(days=1)
    if reset_period == "monthly":
        if current.month == 12:
            return midnight.replace(year=current.year + 1, month=1, day=1)
        return midnight.replace(month=current.month + 1, day=1)
    if reset_period == "yearly":
        return midnight.replace(year=current.year + 1, month=1, day=1)
    return None


def calculate_percent_used(current: int, max_value: int) -> int:
    """Percent of quota used, 0..100. Unlimited is always 0, a zero limit 100."""
    if max_value == UNLIMITED:
        return 0
    if max_value <= 0:
        return 100
    return min(100, _round_half_up(current / max_value * 100))


def calculate_remaining(current: int, max_value: int) -> int:
    """Remaining quota, never negative; -1 when unlimited."""
    if max_value == UNLIMITED:
        return UNLIMITED
    return max(0, max_value - current)


def within_quota(current: int, max_value: int, requested: int = 1) -> bool:
    if max_value == UNLIMITED:
        return True
    return current + requested <= max_value


def is_subscription_active(status: Optional[str]) -> bool:
    return status in ACTIVE_STATUSES


def is_in_trial(trial_ends_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if trial_ends_at is None:
        return False
    return ensure_utc(trial_ends_at) > _now(now)


def get_trial_days_remaining(trial_ends_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    if trial_ends_at is None:
        return 0
    delta = ensure_utc(trial_ends_at) - _now(now)
    if delta.total_seconds() <= 0:
        return 0
    return math.ceil(delta.total_seconds() / 86400)


def has_feature(features: Optional[Iterable[str]], feature: str) -> bool:
    """Plan feature lookup. '*' grants everything; an empty list grants nothing."""
    if not features:
        return False
    feature_list = list(features)
    return "*" in feature_list or feature in feature_list


def format_price(amount_cents: int, currency: str = "usd") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.lower())
    amount = f"{amount_cents / 100:,.2f}"
    if symbol:
        return f"{symbol}{amount}"
    return f"{amount} {currency.upper()}"


def calculate_yearly_savings(monthly_cents: int, yearly_cents: int) -> int:
    """Percent saved by paying yearly instead of 12 x monthly (0 for free plans)."""
    full_year = monthly_cents * 12
    if full_year <= 0:
        return 0
    return _round_half_up((full_year - yearly_cents) / full_year * 100)
