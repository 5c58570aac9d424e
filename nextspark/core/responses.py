"""Success envelope helpers for /api/v1 responses."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from nextspark.core.logging import get_request_id


def build_meta(request_id: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "requestId": request_id or get_request_id(),
    }
    meta.update({k: v for k, v in extra.items() if v is not None})
    return meta


def api_response(data: Any, **meta: Any) -> Dict[str, Any]:
    """Wrap data as {success, data, meta}."""
    return {"success": True, "data": data, "meta": build_meta(**meta)}


def paginated_response(items: list, *, total: int, limit: int, offset: int) -> Dict[str, Any]:
    return api_response(
        items,
        total=total,
        limit=limit,
        offset=offset,
        hasMore=offset + len(items) < total,
    )
