import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from nextspark.core.errors import AppError, app_error_handler
from nextspark.core.logging import get_request_id, get_team_id
from nextspark.core.middleware.request_id import RequestIdMiddleware
from nextspark.core.responses import api_response


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)

    @app.get("/")
    async def root(request: Request):
        return api_response({"state": getattr(request.state, "request_id", None), "ctx": get_request_id()})

    @app.get("/boom")
    async def boom():
        raise AppError("nope", code="TEAPOT", status_code=418)

    return app


def test_generates_request_id_when_missing():
    client = TestClient(_make_app())

    resp = client.get("/")
    assert resp.status_code == 200
    rid_header = resp.headers.get("x-request-id")
    body = resp.json()

    assert rid_header
    assert body["data"]["state"] == rid_header
    assert body["data"]["ctx"] == rid_header
    assert body["meta"]["requestId"] == rid_header


def test_echoes_provided_request_id():
    client = TestClient(_make_app())

    resp = client.get("/", headers={"X-Request-Id": "test-rid-123"})
    assert resp.headers.get("x-request-id") == "test-rid-123"
    assert resp.json()["meta"]["requestId"] == "test-rid-123"


def test_error_envelope_carries_request_id():
    client = TestClient(_make_app())

    resp = client.get("/boom", headers={"X-Request-Id": "rid-err"})
    assert resp.status_code == 418
    assert resp.headers.get("x-request-id") == "rid-err"
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "TEAPOT"
    assert body["meta"]["requestId"] == "rid-err"


def test_unsafe_request_id_is_replaced():
    client = TestClient(_make_app())

    resp = client.get("/", headers={"X-Request-Id": "bad id\twith spaces"})
    rid = resp.headers.get("x-request-id")
    assert rid != "bad id\twith spaces"
    assert len(rid) == 32
    assert resp.json()["meta"]["requestId"] == rid


def test_team_header_is_bound_for_logging():
    app = _make_app()

    @app.get("/team")
    async def team():
        return api_response({"team": get_team_id()})

    resp = TestClient(app).get("/team", headers={"x-team-id": "team-42"})
    assert resp.json()["data"]["team"] == "team-42"


def test_completion_is_logged_except_for_health_checks(caplog):
    app = _make_app()

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="nextspark"):
        client.get("/", headers={"X-Request-Id": "rid-log"})
        client.get("/healthz", headers={"X-Request-Id": "rid-health"})

    completed = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert [r.request_id for r in completed] == ["rid-log"]
    assert completed[0].path == "/"
    assert completed[0].status == 200
