"""
nextspark/features/tasks/service.py

Team tasks.

Handles:
- CRUD scoped to the caller's team
- Billing enforcement on create (tasks quota)
- task:created|updated|deleted webhook events
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from nextspark.core.database import ensure_utc, tasks
from nextspark.core.errors import ValidationError
from nextspark.features.billing.enforcement import enforce_action
from nextspark.features.entities import crud
from nextspark.features.teams.members import require_team_permission
from nextspark.features.usage.service import track_usage
from nextspark.models.task import Task, TaskPriority, TaskStatus


logger = logging.getLogger(__name__)

ENTITY = "task"
FIELDS = ("title", "description", "status", "priority", "due_date")


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        status=row.status,
        priority=row.priority,
        due_date=ensure_utc(row.due_date),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in fields.items() if k in FIELDS}
    for key in ("title", "status", "priority"):
        if key in values and values[key] is None:
            values.pop(key)
    if "title" in values and not (values["title"] or "").strip():
        raise ValidationError("Task title is required")
    try:
        if values.get("status") is not None:
            values["status"] = TaskStatus(values["status"]).value
        if values.get("priority") is not None:
            values["priority"] = TaskPriority(values["priority"]).value
    except ValueError as exc:
        raise ValidationError(str(exc))
    if isinstance(values.get("due_date"), str):
        try:
            values["due_date"] = datetime.fromisoformat(values["due_date"])
        except ValueError:
            raise ValidationError(f"Invalid due date: {values['due_date']}")
    if "due_date" in values:
        values["due_date"] = ensure_utc(values["due_date"])
    return values


def list_tasks(
    team_id: str,
    user_id: str,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[Task], int]:
    require_team_permission(team_id, user_id, "tasks.list")
    rows, total = crud.list_rows(
        tasks, team_id, filters={"status": status, "priority": priority}, limit=limit, offset=offset
    )
    return [_row_to_task(row) for row in rows], total


def search_tasks(
    team_id: str, user_id: str, query: str, limit: Optional[int] = None, offset: Optional[int] = None
) -> Tuple[List[Task], int]:
    require_team_permission(team_id, user_id, "tasks.list")
    rows, total = crud.list_rows(
        tasks, team_id, query=query, search_columns=("title", "description"), limit=limit, offset=offset
    )
    return [_row_to_task(row) for row in rows], total


def get_task(team_id: str, user_id: str, task_id: str) -> Task:
    require_team_permission(team_id, user_id, "tasks.read")
    return _row_to_task(crud.get_row(tasks, team_id, task_id, "Task"))


def create_task(team_id: str, user_id: str, fields: Dict[str, Any]) -> Task:
    require_team_permission(team_id, user_id, "tasks.create")
    values = _clean(fields)
    if not values.get("title"):
        raise ValidationError("Task title is required")
    enforce_action(user_id, team_id, "tasks.create")

    values.setdefault("status", TaskStatus.TODO.value)
    values.setdefault("priority", TaskPriority.MEDIUM.value)
    task = _row_to_task(crud.insert_row(tasks, {**values, "team_id": team_id, "user_id": user_id}))
    track_usage(team_id, "tasks", 1)
    crud.emit_entity_event(ENTITY, "created", task.id, task.to_api(), team_id)
    return task


def update_task(team_id: str, user_id: str, task_id: str, fields: Dict[str, Any]) -> Task:
    require_team_permission(team_id, user_id, "tasks.update")
    task = _row_to_task(crud.update_row(tasks, team_id, task_id, _clean(fields), "Task"))
    crud.emit_entity_event(ENTITY, "updated", task.id, task.to_api(), team_id)
    return task


def delete_task(team_id: str, user_id: str, task_id: str) -> None:
    require_team_permission(team_id, user_id, "tasks.delete")
    crud.delete_row(tasks, team_id, task_id, "Task")
    track_usage(team_id, "tasks", -1)
    crud.emit_entity_event(ENTITY, "deleted", task_id, {"id": task_id}, team_id)
