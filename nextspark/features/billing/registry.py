"""
nextspark/features/billing/registry.py

Static billing configuration: plans, limit definitions and the action
mappings consumed by the three-layer evaluator.

An action may map to a permission, a feature and a limit independently.
An action absent from all three mappings is unrestricted.
"""

from typing import Any, Dict


# Plan catalogue (prices in cents). Enterprise grants every feature
# ("*") and has no limits (-1 everywhere).
DEFAULT_PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "name": "Free",
        "type": "free",
        "price_monthly": 0,
        "price_yearly": 0,
        "trial_days": 0,
        "is_default": True,
        "is_public": True,
        "sort_order": 1,
        "features": ["basic_analytics"],
        "limits": {
            "team_members": 3,
            "tasks": 50,
            "customers": 25,
            "pages": 10,
            "storage_gb": 1,
            "api_calls": 1000,
            "file_uploads": 100,
            "webhooks_count": 0,
        },
    },
    "pro": {
        "name": "Pro",
        "type": "paid",
        "price_monthly": 2900,
        "price_yearly": 29000,
        "trial_days": 14,
        "is_default": False,
        "is_public": True,
        "sort_order": 2,
        "features": [
            "basic_analytics",
            "advanced_analytics",
            "realtime_analytics",
            "api_access",
            "webhooks",
            "custom_branding",
            "guest_access",
            "priority_support",
            "task_automation",
        ],
        "limits": {
            "team_members": 15,
            "tasks": 1000,
            "customers": 500,
            "pages": 100,
            "storage_gb": 50,
            "api_calls": 100000,
            "file_uploads": 2000,
            "webhooks_count": 10,
        },
    },
    "enterprise": {
        "name": "Enterprise",
        "type": "enterprise",
        "price_monthly": 49900,
        "price_yearly": 499000,
        "trial_days": 30,
        "is_default": False,
        "is_public": False,
        "sort_order": 3,
        "features": ["*"],
        "limits": {
            "team_members": -1,
            "tasks": -1,
            "customers": -1,
            "pages": -1,
            "storage_gb": -1,
            "api_calls": -1,
            "file_uploads": -1,
            "webhooks_count": -1,
        },
    },
}

DEFAULT_PLAN_SLUG = "free"

# reset_period: never | daily | monthly | yearly
LIMITS: Dict[str, Dict[str, str]] = {
    "team_members": {"name": "Team Members", "reset_period": "never"},
    "tasks": {"name": "Tasks", "reset_period": "never"},
    "customers": {"name": "Customers", "reset_period": "never"},
    "pages": {"name": "Pages", "reset_period": "never"},
    "storage_gb": {"name": "Storage (GB)", "reset_period": "never"},
    "api_calls": {"name": "API Calls", "reset_period": "monthly"},
    "file_uploads": {"name": "File Uploads", "reset_period": "monthly"},
    "webhooks_count": {"name": "Webhooks", "reset_period": "never"},
}

FEATURES: Dict[str, str] = {
    "basic_analytics": "Basic analytics",
    "advanced_analytics": "Advanced analytics",
    "realtime_analytics": "Realtime analytics",
    "api_access": "API access",
    "webhooks": "Webhooks",
    "custom_branding": "Custom branding",
    "guest_access": "Guest access",
    "priority_support": "Priority support",
    "task_automation": "Task automation",
}

ACTION_MAPPINGS: Dict[str, Dict[str, str]] = {
    # action -> RBAC permission
    "permissions": {
        "tasks.create": "tasks.create",
        "tasks.delete": "tasks.delete",
        "customers.create": "customers.create",
        "customers.delete": "customers.delete",
        "pages.create": "pages.create",
        "pages.publish": "pages.publish",
        "team.members.invite": "team.members.invite",
        "api_keys.create": "api_keys.create",
        "webhooks.create": "team.settings.edit",
        "branding.customize": "team.settings.edit",
    },
    # action -> plan feature
    "features": {
        "analytics.advanced": "advanced_analytics",
        "analytics.realtime": "realtime_analytics",
        "api_keys.create": "api_access",
        "webhooks.create": "webhooks",
        "branding.customize": "custom_branding",
        "team.guests.invite": "guest_access",
        "tasks.automate": "task_automation",
    },
    # action -> consumed limit
    "limits": {
        "tasks.create": "tasks",
        "customers.create": "customers",
        "pages.create": "pages",
        "team.members.invite": "team_members",
        "webhooks.create": "webhooks_count",
        "files.upload": "file_uploads",
        "api.call": "api_calls",
    },
}


def get_plan_config(slug: str) -> Dict[str, Any]:
    return DEFAULT_PLANS.get(slug, {})


def get_limit_config(limit_slug: str) -> Dict[str, str]:
    return LIMITS.get(limit_slug, {})


def get_limit_value(plan_limits: Dict[str, int], limit_slug: str) -> int:
    """Limit for a plan; a limit the plan does not declare is 0."""
    return int(plan_limits.get(limit_slug, 0))
