"""Tests for normalized error responses on /api/v1."""


def _headers(user_id, team_id=None):
    headers = {"X-User-Id": user_id}
    if team_id:
        headers["x-team-id"] = team_id
    return headers


def _assert_error(resp, status, code):
    assert resp.status_code == status
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == code
    assert isinstance(body["error"], str)
    assert body["meta"]["requestId"] == resp.headers.get("x-request-id")
    return body


def test_missing_auth_is_401(client):
    _assert_error(client.get("/api/v1/users/me"), 401, "AUTHENTICATION_FAILED")


def test_team_context_required(client):
    _assert_error(client.get("/api/v1/tasks", headers=_headers("u1")), 400, "TEAM_CONTEXT_REQUIRED")


def test_non_member_gets_404(client, team):
    _assert_error(client.get("/api/v1/tasks", headers=_headers("stranger", team.id)), 404, "TEAM_NOT_FOUND")


def test_body_validation_error(client, team):
    resp = client.post("/api/v1/tasks", headers=_headers("owner-1", team.id), json={"title": ""})
    body = _assert_error(resp, 400, "VALIDATION_ERROR")
    assert body["details"][0]["loc"][-1] == "title"


def test_owner_only_before_permission_denied(client, team, add_member):
    add_member("viewer-1", "viewer")
    resp = client.patch(f"/api/v1/teams/{team.id}", headers=_headers("viewer-1"), json={"name": "Mine"})
    _assert_error(resp, 403, "OWNER_ONLY")

    resp = client.patch(f"/api/v1/teams/{team.id}", headers=_headers("viewer-1"), json={"slug": "mine"})
    _assert_error(resp, 403, "PERMISSION_DENIED")


def test_quota_error_details(client, team):
    from nextspark.features.usage.service import track_usage

    track_usage(team.id, "customers", 25)
    resp = client.post("/api/v1/customers", headers=_headers("owner-1", team.id), json={"name": "Globex"})
    body = _assert_error(resp, 403, "QUOTA_EXCEEDED")
    assert body["details"]["quota"]["max"] == 25
    assert body["details"]["quota"]["percentUsed"] == 100


def test_feature_not_in_plan(client, team):
    resp = client.post(
        "/api/v1/api-keys", headers=_headers("owner-1", team.id), json={"name": "ci", "scopes": ["tasks:read"]}
    )
    body = _assert_error(resp, 403, "FEATURE_NOT_IN_PLAN")
    assert body["details"]["feature"] == "api_access"


def test_unknown_route_is_normalized(client):
    _assert_error(client.get("/api/v1/does-not-exist"), 404, "NOT_FOUND")
