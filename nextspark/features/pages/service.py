"""
nextspark/features/pages/service.py

Team pages built from block trees.

Handles:
- CRUD scoped to the caller's team, slug unique per (team, locale)
- Block validation; saving syncs pattern usages
- Publishing requires pages.publish
- Optional expansion of pattern references on read
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from nextspark.core.database import ensure_utc, pages
from nextspark.core.errors import ConflictError, ValidationError
from nextspark.features.billing.enforcement import enforce_action
from nextspark.features.blocks.service import extract_pattern_ids, resolve_pattern_references, validate_blocks
from nextspark.features.entities import crud
from nextspark.features.patterns import usage as pattern_usage
from nextspark.features.teams.members import require_team_permission
from nextspark.features.usage.service import track_usage
from nextspark.models.page import Page, PageStatus
from nextspark.models.team import SLUG_PATTERN


logger = logging.getLogger(__name__)

ENTITY = "page"
ENTITY_TYPE = "pages"
FIELDS = ("title", "slug", "locale", "status", "blocks", "seo_title", "seo_description")
_SLUG_RE = re.compile(SLUG_PATTERN)


def _row_to_page(row, blocks: Optional[List[Dict[str, Any]]] = None) -> Page:
    return Page(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        title=row.title,
        slug=row.slug,
        locale=row.locale,
        status=row.status,
        blocks=row.blocks if blocks is None else blocks,
        seo_title=row.seo_title,
        seo_description=row.seo_description,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in fields.items() if k in FIELDS}
    for key in ("title", "slug", "locale", "status", "blocks"):
        if key in values and values[key] is None:
            values.pop(key)
    if "title" in values and not values["title"].strip():
        raise ValidationError("Page title is required")
    if "slug" in values and not _SLUG_RE.match(values["slug"]):
        raise ValidationError("Slug must be lowercase letters, numbers and single hyphens")
    if "status" in values:
        try:
            values["status"] = PageStatus(values["status"]).value
        except ValueError:
            raise ValidationError(f"Invalid page status: {values['status']}")
    if "blocks" in values:
        values["blocks"] = validate_blocks(values["blocks"])
    return values


def _check_publish(team_id: str, user_id: str, values: Dict[str, Any]) -> None:
    if values.get("status") == PageStatus.PUBLISHED.value:
        require_team_permission(team_id, user_id, "pages.publish")


def list_pages(
    team_id: str,
    user_id: str,
    status: Optional[str] = None,
    locale: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[Page], int]:
    require_team_permission(team_id, user_id, "pages.list")
    rows, total = crud.list_rows(pages, team_id, filters={"status": status, "locale": locale}, limit=limit, offset=offset)
    return [_row_to_page(row) for row in rows], total


def search_pages(
    team_id: str, user_id: str, query: str, limit: Optional[int] = None, offset: Optional[int] = None
) -> Tuple[List[Page], int]:
    require_team_permission(team_id, user_id, "pages.list")
    rows, total = crud.list_rows(
        pages, team_id, query=query, search_columns=("title", "slug"), limit=limit, offset=offset
    )
    return [_row_to_page(row) for row in rows], total


def get_page(team_id: str, user_id: str, page_id: str, resolve_patterns: bool = False) -> Page:
    require_team_permission(team_id, user_id, "pages.read")
    row = crud.get_row(pages, team_id, page_id, "Page")
    if not resolve_patterns:
        return _row_to_page(row)

    from nextspark.features.patterns.service import get_patterns_by_ids

    cache = get_patterns_by_ids(team_id, extract_pattern_ids(row.blocks))
    return _row_to_page(row, blocks=resolve_pattern_references(row.blocks, cache))


def create_page(team_id: str, user_id: str, fields: Dict[str, Any]) -> Page:
    require_team_permission(team_id, user_id, "pages.create")
    values = _clean(fields)
    if not values.get("title") or not values.get("slug"):
        raise ValidationError("Page title and slug are required")
    _check_publish(team_id, user_id, values)
    enforce_action(user_id, team_id, "pages.create")

    values.setdefault("locale", "en")
    values.setdefault("status", PageStatus.DRAFT.value)
    values.setdefault("blocks", [])
    try:
        page = _row_to_page(crud.insert_row(pages, {**values, "team_id": team_id, "user_id": user_id}))
    except IntegrityError:
        raise ConflictError("A page with this slug already exists for this locale", code="SLUG_TAKEN")

    track_usage(team_id, "pages", 1)
    pattern_usage.sync_usages(ENTITY_TYPE, page.id, page.blocks, team_id)
    crud.emit_entity_event(ENTITY, "created", page.id, page.to_api(), team_id)
    return page


def update_page(team_id: str, user_id: str, page_id: str, fields: Dict[str, Any]) -> Page:
    require_team_permission(team_id, user_id, "pages.update")
    values = _clean(fields)
    _check_publish(team_id, user_id, values)
    try:
        page = _row_to_page(crud.update_row(pages, team_id, page_id, values, "Page"))
    except IntegrityError:
        raise ConflictError("A page with this slug already exists for this locale", code="SLUG_TAKEN")

    if "blocks" in values:
        pattern_usage.sync_usages(ENTITY_TYPE, page.id, page.blocks, team_id)
    crud.emit_entity_event(ENTITY, "updated", page.id, page.to_api(), team_id)
    return page


def delete_page(team_id: str, user_id: str, page_id: str) -> None:
    require_team_permission(team_id, user_id, "pages.delete")
    crud.delete_row(pages, team_id, page_id, "Page")
    pattern_usage.remove_entity_usages(ENTITY_TYPE, page_id)
    track_usage(team_id, "pages", -1)
    crud.emit_entity_event(ENTITY, "deleted", page_id, {"id": page_id}, team_id)
