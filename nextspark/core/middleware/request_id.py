import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from nextspark.core.logging import latency_bucket_ms, request_id_ctx_var, team_id_ctx_var

logger = logging.getLogger(__name__)

# Client-supplied ids are echoed into headers and logs, so keep them tame
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

# Health-check traffic is not logged
QUIET_PATHS = frozenset({"/healthz", "/readyz"})


def resolve_request_id(incoming):
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Bind request_id (and the x-team-id tenant hint) for the request.

    The id is echoed in the response header and read back by the response
    envelopes through the context var.
    """

    def __init__(self, app, header_name: str = "x-request-id", team_header: str = "x-team-id"):
        super().__init__(app)
        self.header_name = header_name
        self.team_header = team_header

    async def dispatch(self, request, call_next):
        rid = resolve_request_id(request.headers.get(self.header_name))
        team_id = request.headers.get(self.team_header) or None
        request.state.request_id = rid
        rid_token = request_id_ctx_var.set(rid)
        team_token = team_id_ctx_var.set(team_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(rid_token)
            team_id_ctx_var.reset(team_token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid

        path = request.url.path
        if path not in QUIET_PATHS:
            status = getattr(response, "status_code", None)
            level = logging.WARNING if status and status >= 500 else logging.INFO
            logger.log(
                level,
                "request.complete",
                extra={
                    "request_id": rid,
                    "team_id": team_id,
                    "path": path,
                    "method": request.method,
                    "status": status,
                    "latency_bucket": latency_bucket_ms(duration_ms),
                },
            )
        return response
