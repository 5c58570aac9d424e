"""
Structured logging with per-request tenant context.

- JSON lines in production, single-line pretty output elsewhere.
- request_id and team_id live in context vars and are stamped onto every
  record by RequestContextFilter, so service code never passes them around.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
team_id_ctx_var: ContextVar[Optional[str]] = ContextVar("team_id", default=None)

LOGGER_NAME = "nextspark"

# Fields copied from `extra=` into JSON output when present
_STRUCTURED_FIELDS = (
    "user_id",
    "team_id",
    "event_type",
    "error_code",
    "status",
    "path",
    "method",
    "latency_bucket",
    "action_id",
    "action_type",
)

# Chatty client libraries, capped at WARNING
_QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "uvicorn.access")


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    """Fetch the current request_id from context (if any)."""
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def get_team_id(default: Optional[str] = None) -> Optional[str]:
    team_id = team_id_ctx_var.get()
    return team_id if team_id is not None else default


def bind_team_id(team_id: Optional[str]) -> None:
    """Attach the resolved team to log records for the rest of this context."""
    team_id_ctx_var.set(team_id)


def _format_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z')


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    if latency_ms < 10:
        return "<10ms"
    if latency_ms < 100:
        return "10-100ms"
    if latency_ms < 500:
        return "100-500ms"
    if latency_ms < 1000:
        return "500-1000ms"
    return ">=1000ms"


class RequestContextFilter(logging.Filter):
    """Stamp request_id and team_id from context unless the caller set them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        if getattr(record, "team_id", None) is None:
            record.team_id = get_team_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _format_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [_format_timestamp(record), record.levelname, f"[{record.name}]"]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"[rid={rid}]")
        team_id = getattr(record, "team_id", None)
        if team_id:
            parts.append(f"[team={team_id}]")
        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Install one stdout handler on the "nextspark" logger tree."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or "INFO").upper())

    formatter: logging.Formatter
    if env.lower() == "production":
        formatter = JsonFormatter()
    else:
        formatter = PrettyFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
