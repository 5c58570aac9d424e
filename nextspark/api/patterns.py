"""
Reusable block patterns and where they are used.

- GET /patterns/{id}/usages?entityType=pages&limit=&offset=
  -> {usages, counts, total} with entity title/slug/status per usage
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nextspark.core.auth import TeamContext, get_team_context, require_scope
from nextspark.core.responses import api_response, paginated_response
from nextspark.features.entities.crud import clamp_pagination
from nextspark.features.patterns import service, usage
from nextspark.models.pattern import PatternCreateRequest, PatternUpdateRequest

router = APIRouter(prefix="/patterns", tags=["patterns"])

_read = [Depends(require_scope("patterns:read"))]
_write = [Depends(require_scope("patterns:write"))]


@router.get("", dependencies=_read)
def list_patterns(
    ctx: TeamContext = Depends(get_team_context),
    status: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
):
    limit, offset = clamp_pagination(limit, offset)
    if q:
        items, total = service.search_patterns(ctx.team_id, ctx.user_id, q, limit=limit, offset=offset)
    else:
        items, total = service.list_patterns(ctx.team_id, ctx.user_id, status=status, limit=limit, offset=offset)
    return paginated_response([p.to_api() for p in items], total=total, limit=limit, offset=offset)


@router.post("", status_code=201, dependencies=_write)
def create_pattern(body: PatternCreateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.create_pattern(ctx.team_id, ctx.user_id, body.model_dump()).to_api())


@router.get("/{pattern_id}", dependencies=_read)
def get_pattern(pattern_id: str, ctx: TeamContext = Depends(get_team_context)):
    pattern = service.get_pattern(ctx.team_id, ctx.user_id, pattern_id)
    return api_response({**pattern.to_api(), "usageCount": usage.get_usage_count(pattern_id)})


@router.patch("/{pattern_id}", dependencies=_write)
def update_pattern(pattern_id: str, body: PatternUpdateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.update_pattern(ctx.team_id, ctx.user_id, pattern_id, body.provided()).to_api())


@router.delete("/{pattern_id}", dependencies=_write)
def delete_pattern(pattern_id: str, ctx: TeamContext = Depends(get_team_context)):
    service.delete_pattern(ctx.team_id, ctx.user_id, pattern_id)
    return api_response({"id": pattern_id, "deleted": True})


@router.get("/{pattern_id}/usages", dependencies=_read)
def pattern_usages(
    pattern_id: str,
    ctx: TeamContext = Depends(get_team_context),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
):
    # Ownership check; a pattern of another team is a 404
    service.get_pattern(ctx.team_id, ctx.user_id, pattern_id)
    limit, offset = clamp_pagination(limit, offset)
    result = usage.get_usages_with_entity_info(pattern_id, entity_type=entity_type, limit=limit, offset=offset)
    return api_response(
        {
            "usages": [u.to_api() for u in result["usages"]],
            "counts": [c.to_api() for c in result["counts"]],
        },
        total=result["total"],
        limit=limit,
        offset=offset,
    )
