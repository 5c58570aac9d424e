"""Tests for the permission -> feature -> quota evaluator."""

from nextspark.features.billing.evaluator import DenyReason, build_quota, evaluate_action
from nextspark.features.billing.registry import DEFAULT_PLANS

FREE = DEFAULT_PLANS["free"]
PRO = DEFAULT_PLANS["pro"]
ENTERPRISE = DEFAULT_PLANS["enterprise"]


def _usage(values):
    return lambda limit_slug, _period: values.get(limit_slug, 0)


def test_unmapped_action_is_allowed():
    decision = evaluate_action("reports.view", role="viewer", plan_features=[])
    assert decision.allowed
    assert decision.reason is None


def test_permission_checked_first():
    # Viewer lacks tasks.create even though the plan has room
    decision = evaluate_action(
        "tasks.create", role="viewer", plan_features=FREE["features"], plan_limits=FREE["limits"]
    )
    assert not decision.allowed
    assert decision.reason == DenyReason.NO_PERMISSION
    assert decision.permission == "tasks.create"


def test_feature_layer_denies_missing_feature():
    decision = evaluate_action("api_keys.create", role="owner", plan_features=FREE["features"])
    assert not decision.allowed
    assert decision.reason == DenyReason.FEATURE_NOT_IN_PLAN
    assert decision.feature == "api_access"


def test_empty_feature_list_denies_and_wildcard_allows():
    assert evaluate_action("tasks.automate", role="owner", plan_features=[]).reason == DenyReason.FEATURE_NOT_IN_PLAN
    assert evaluate_action("tasks.automate", role="owner", plan_features=["*"]).allowed


def test_quota_exceeded():
    decision = evaluate_action(
        "tasks.create",
        role="member",
        plan_features=FREE["features"],
        plan_limits=FREE["limits"],
        usage_lookup=_usage({"tasks": 50}),
    )
    assert not decision.allowed
    assert decision.reason == DenyReason.QUOTA_EXCEEDED
    assert decision.quota.current == 50
    assert decision.quota.remaining == 0
    assert decision.to_dict()["limitSlug"] == "tasks"


def test_quota_within_limit_reports_usage():
    decision = evaluate_action(
        "tasks.create",
        role="member",
        plan_features=PRO["features"],
        plan_limits=PRO["limits"],
        usage_lookup=_usage({"tasks": 10}),
    )
    assert decision.allowed
    assert decision.quota.max == 1000
    assert decision.quota.remaining == 990


def test_unlimited_limit_skips_usage_lookup():
    def explode(*_args):
        raise AssertionError("usage must not be read for unlimited limits")

    decision = evaluate_action(
        "tasks.create",
        role="member",
        plan_features=ENTERPRISE["features"],
        plan_limits=ENTERPRISE["limits"],
        usage_lookup=explode,
    )
    assert decision.allowed
    assert decision.quota.max == -1
    assert decision.quota.remaining == -1


def test_missing_limit_counts_as_zero():
    decision = evaluate_action(
        "tasks.create", role="owner", plan_features=["*"], plan_limits={}, usage_lookup=_usage({})
    )
    assert not decision.allowed
    assert decision.reason == DenyReason.QUOTA_EXCEEDED


def test_requested_amount_counts():
    decision = evaluate_action(
        "customers.create",
        role="admin",
        plan_features=[],
        plan_limits={"customers": 10},
        usage_lookup=_usage({"customers": 8}),
        requested=3,
    )
    assert not decision.allowed


def test_custom_mappings():
    mappings = {"permissions": {}, "features": {"x.run": "x"}, "limits": {}}
    assert not evaluate_action("x.run", role="owner", plan_features=["y"], mappings=mappings).allowed
    assert evaluate_action("x.run", role="owner", plan_features=["x"], mappings=mappings).allowed


def test_build_quota():
    quota = build_quota(3, 4)
    assert quota.allowed
    assert quota.percent_used == 75
    assert not build_quota(4, 4).allowed
