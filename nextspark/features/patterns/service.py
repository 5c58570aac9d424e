"""
nextspark/features/patterns/service.py

Reusable block patterns.

Patterns hold plain blocks only; nesting a pattern reference inside a
pattern is rejected. Deleting a pattern drops its usage rows.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from nextspark.core.database import ensure_utc, get_db_session, patterns
from nextspark.core.errors import ConflictError, ValidationError
from nextspark.features.blocks.service import validate_blocks
from nextspark.features.entities import crud
from nextspark.features.patterns import usage as pattern_usage
from nextspark.features.teams.members import require_team_permission
from nextspark.models.pattern import Pattern


logger = logging.getLogger(__name__)

ENTITY = "pattern"
FIELDS = ("title", "slug", "description", "status", "blocks")


def _row_to_pattern(row) -> Pattern:
    return Pattern(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        title=row.title,
        slug=row.slug,
        description=row.description,
        status=row.status,
        blocks=row.blocks or [],
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in fields.items() if k in FIELDS}
    for key in ("title", "slug", "status", "blocks"):
        if key in values and values[key] is None:
            values.pop(key)
    if "title" in values and not values["title"].strip():
        raise ValidationError("Pattern title is required")
    if "slug" in values and not values["slug"].strip():
        raise ValidationError("Pattern slug is required")
    if "blocks" in values:
        values["blocks"] = validate_blocks(values["blocks"], allow_pattern_references=False)
    return values


def get_patterns_by_ids(team_id: str, pattern_ids: Iterable[str]) -> Dict[str, Pattern]:
    """Pattern cache for reference expansion, restricted to the team."""
    ids = list(pattern_ids)
    if not ids:
        return {}
    with get_db_session() as session:
        rows = session.execute(
            select(patterns).where(patterns.c.team_id == team_id).where(patterns.c.id.in_(ids))
        ).fetchall()
    return {row.id: _row_to_pattern(row) for row in rows}


def list_patterns(
    team_id: str,
    user_id: str,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[Pattern], int]:
    require_team_permission(team_id, user_id, "patterns.list")
    rows, total = crud.list_rows(patterns, team_id, filters={"status": status}, limit=limit, offset=offset)
    return [_row_to_pattern(row) for row in rows], total


def search_patterns(
    team_id: str, user_id: str, query: str, limit: Optional[int] = None, offset: Optional[int] = None
) -> Tuple[List[Pattern], int]:
    require_team_permission(team_id, user_id, "patterns.list")
    rows, total = crud.list_rows(
        patterns, team_id, query=query, search_columns=("title", "slug", "description"), limit=limit, offset=offset
    )
    return [_row_to_pattern(row) for row in rows], total


def get_pattern(team_id: str, user_id: str, pattern_id: str) -> Pattern:
    require_team_permission(team_id, user_id, "patterns.read")
    return _row_to_pattern(crud.get_row(patterns, team_id, pattern_id, "Pattern"))


def create_pattern(team_id: str, user_id: str, fields: Dict[str, Any]) -> Pattern:
    require_team_permission(team_id, user_id, "patterns.create")
    values = _clean(fields)
    if not values.get("title") or not values.get("slug"):
        raise ValidationError("Pattern title and slug are required")
    values.setdefault("status", "draft")
    values.setdefault("blocks", [])
    try:
        pattern = _row_to_pattern(crud.insert_row(patterns, {**values, "team_id": team_id, "user_id": user_id}))
    except IntegrityError:
        raise ConflictError("A pattern with this slug already exists", code="SLUG_TAKEN")
    crud.emit_entity_event(ENTITY, "created", pattern.id, pattern.to_api(), team_id)
    return pattern


def update_pattern(team_id: str, user_id: str, pattern_id: str, fields: Dict[str, Any]) -> Pattern:
    require_team_permission(team_id, user_id, "patterns.update")
    try:
        pattern = _row_to_pattern(crud.update_row(patterns, team_id, pattern_id, _clean(fields), "Pattern"))
    except IntegrityError:
        raise ConflictError("A pattern with this slug already exists", code="SLUG_TAKEN")
    crud.emit_entity_event(ENTITY, "updated", pattern.id, pattern.to_api(), team_id)
    return pattern


def delete_pattern(team_id: str, user_id: str, pattern_id: str) -> None:
    require_team_permission(team_id, user_id, "patterns.delete")
    crud.get_row(patterns, team_id, pattern_id, "Pattern")
    pattern_usage.remove_pattern_usages(pattern_id)
    crud.delete_row(patterns, team_id, pattern_id, "Pattern")
    crud.emit_entity_event(ENTITY, "deleted", pattern_id, {"id": pattern_id}, team_id)
