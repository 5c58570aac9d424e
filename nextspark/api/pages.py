"""
Team pages.

GET /pages/{id}?resolvePatterns=true expands pattern references in the
block tree; saving a page syncs its pattern usages.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nextspark.core.auth import TeamContext, get_team_context, require_scope
from nextspark.core.responses import api_response, paginated_response
from nextspark.features.entities.crud import clamp_pagination
from nextspark.features.pages import service
from nextspark.models.page import PageCreateRequest, PageUpdateRequest

router = APIRouter(prefix="/pages", tags=["pages"])

_read = [Depends(require_scope("pages:read"))]
_write = [Depends(require_scope("pages:write"))]


@router.get("", dependencies=_read)
def list_pages(
    ctx: TeamContext = Depends(get_team_context),
    status: Optional[str] = Query(None),
    locale: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Search title and slug"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
):
    limit, offset = clamp_pagination(limit, offset)
    if q:
        items, total = service.search_pages(ctx.team_id, ctx.user_id, q, limit=limit, offset=offset)
    else:
        items, total = service.list_pages(
            ctx.team_id, ctx.user_id, status=status, locale=locale, limit=limit, offset=offset
        )
    return paginated_response([p.to_api() for p in items], total=total, limit=limit, offset=offset)


@router.post("", status_code=201, dependencies=_write)
def create_page(body: PageCreateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.create_page(ctx.team_id, ctx.user_id, body.model_dump()).to_api())


@router.get("/{page_id}", dependencies=_read)
def get_page(
    page_id: str,
    ctx: TeamContext = Depends(get_team_context),
    resolve_patterns: bool = Query(False, alias="resolvePatterns"),
):
    return api_response(service.get_page(ctx.team_id, ctx.user_id, page_id, resolve_patterns=resolve_patterns).to_api())


@router.patch("/{page_id}", dependencies=_write)
def update_page(page_id: str, body: PageUpdateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.update_page(ctx.team_id, ctx.user_id, page_id, body.provided()).to_api())


@router.delete("/{page_id}", dependencies=_write)
def delete_page(page_id: str, ctx: TeamContext = Depends(get_team_context)):
    service.delete_page(ctx.team_id, ctx.user_id, page_id)
    return api_response({"id": page_id, "deleted": True})
