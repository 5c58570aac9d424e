"""
Team tasks.

All routes need x-team-id (or a team-bound API key) and the tasks:* scope
for API-key callers.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nextspark.core.auth import TeamContext, get_team_context, require_scope
from nextspark.core.responses import api_response, paginated_response
from nextspark.features.entities.crud import clamp_pagination
from nextspark.features.tasks import service
from nextspark.models.task import TaskCreateRequest, TaskUpdateRequest

router = APIRouter(prefix="/tasks", tags=["tasks"])

_read = [Depends(require_scope("tasks:read"))]
_write = [Depends(require_scope("tasks:write"))]


@router.get("", dependencies=_read)
def list_tasks(
    ctx: TeamContext = Depends(get_team_context),
    status: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Search title and description"),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
):
    limit, offset = clamp_pagination(limit, offset)
    if q:
        items, total = service.search_tasks(ctx.team_id, ctx.user_id, q, limit=limit, offset=offset)
    else:
        items, total = service.list_tasks(
            ctx.team_id, ctx.user_id, status=status, priority=priority, limit=limit, offset=offset
        )
    return paginated_response([t.to_api() for t in items], total=total, limit=limit, offset=offset)


@router.post("", status_code=201, dependencies=_write)
def create_task(body: TaskCreateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.create_task(ctx.team_id, ctx.user_id, body.model_dump()).to_api())


@router.get("/{task_id}", dependencies=_read)
def get_task(task_id: str, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.get_task(ctx.team_id, ctx.user_id, task_id).to_api())


@router.patch("/{task_id}", dependencies=_write)
def update_task(task_id: str, body: TaskUpdateRequest, ctx: TeamContext = Depends(get_team_context)):
    return api_response(service.update_task(ctx.team_id, ctx.user_id, task_id, body.provided()).to_api())


@router.delete("/{task_id}", dependencies=_write)
def delete_task(task_id: str, ctx: TeamContext = Depends(get_team_context)):
    service.delete_task(ctx.team_id, ctx.user_id, task_id)
    return api_response({"id": task_id, "deleted": True})
