"""Error normalization and handlers.

Every error response shares one envelope:
    {"success": false, "error": <message>, "code": <CODE>, "details": ..., "meta": {...}}
"""

import logging
import builtins
from typing import Any, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from nextspark.core.logging import get_request_id
from nextspark.core.responses import build_meta


class AppError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 400


class TeamContextRequiredError(AppError):
    """Raised when a team-scoped endpoint is called without x-team-id."""
    code = "TEAM_CONTEXT_REQUIRED"
    status_code = 400


class AuthenticationError(AppError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401


class PermissionError(AppError, builtins.PermissionError):
    code = "PERMISSION_DENIED"
    status_code = 403


class OwnerOnlyError(PermissionError):
    """Raised when a non-owner touches owner-only team fields."""
    code = "OWNER_ONLY"
    status_code = 403


class FeatureNotInPlanError(AppError):
    code = "FEATURE_NOT_IN_PLAN"
    status_code = 403


class QuotaExceededError(AppError):
    code = "QUOTA_EXCEEDED"
    status_code = 403


class NotFoundError(AppError, ValueError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Any = None) -> dict:
    return {
        "success": False,
        "error": message,
        "code": code,
        "details": details,
        "meta": build_meta(request_id=request_id),
    }


def _error_response(status_code: int, payload: dict, request_id: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = request_id
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details)
    logger = logging.getLogger("nextspark")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _error_response(exc.status_code, payload, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
    details = None
    message = exc.detail if exc.detail else "HTTP error"
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", code)
        message = exc.detail.get("message", "HTTP error")
        details = exc.detail.get("details")
    payload = _error_payload(code, message, rid, details)
    logger = logging.getLogger("nextspark")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _error_response(exc.status_code, payload, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    issues = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    payload = _error_payload("VALIDATION_ERROR", "Validation error", rid, issues)
    logging.getLogger("nextspark").warning(
        "validation.error", extra={"request_id": rid, "error_code": "VALIDATION_ERROR", "status": 400}
    )
    return _error_response(400, payload, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("nextspark")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "INTERNAL_ERROR"})
    payload = _error_payload("INTERNAL_ERROR", "Internal server error", rid)
    return _error_response(500, payload, rid)
