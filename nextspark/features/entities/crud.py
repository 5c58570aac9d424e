"""
nextspark/features/entities/crud.py

Team-scoped row access shared by the entity services.

Every statement here filters on team_id; callers never see rows of
another team, even with a valid id.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Table, select, insert, update, delete, func, or_

from nextspark.core.database import get_db_session, new_id, utc_now
from nextspark.core.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def clamp_pagination(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    limit = 20 if limit is None else int(limit)
    offset = 0 if offset is None else int(offset)
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be >= 1 and offset >= 0")
    return min(limit, MAX_PAGE_SIZE), offset


def list_rows(
    table: Table,
    team_id: str,
    *,
    filters: Optional[Dict[str, Any]] = None,
    query: Optional[str] = None,
    search_columns: Iterable[str] = (),
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[List[Any], int]:
    """Rows for the team, newest first, plus the unpaginated total."""
    limit, offset = clamp_pagination(limit, offset)
    where = [table.c.team_id == team_id]
    for column, value in (filters or {}).items():
        if value is not None:
            where.append(table.c[column] == value)
    if query:
        pattern = f"%{query.strip()}%"
        where.append(or_(*[table.c[column].ilike(pattern) for column in search_columns]))

    with get_db_session() as session:
        total = session.execute(select(func.count()).select_from(table).where(*where)).scalar() or 0
        rows = session.execute(
            select(table).where(*where).order_by(table.c.created_at.desc(), table.c.id).limit(limit).offset(offset)
        ).fetchall()
    return rows, int(total)


def get_row(table: Table, team_id: str, row_id: str, entity: str):
    with get_db_session() as session:
        row = session.execute(
            select(table).where(table.c.id == row_id).where(table.c.team_id == team_id)
        ).first()
    if not row:
        raise NotFoundError(f"{entity} not found")
    return row


def insert_row(table: Table, values: Dict[str, Any]):
    now = utc_now()
    row_id = new_id()
    with get_db_session() as session:
        session.execute(insert(table).values(id=row_id, created_at=now, updated_at=now, **values))
        return session.execute(select(table).where(table.c.id == row_id)).first()


def update_row(table: Table, team_id: str, row_id: str, values: Dict[str, Any], entity: str):
    if not values:
        raise ValidationError("No fields to update", code="NO_FIELDS")
    with get_db_session() as session:
        result = session.execute(
            update(table)
            .where(table.c.id == row_id)
            .where(table.c.team_id == team_id)
            .values(updated_at=utc_now(), **values)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"{entity} not found")
        return session.execute(select(table).where(table.c.id == row_id)).first()


def delete_row(table: Table, team_id: str, row_id: str, entity: str) -> None:
    with get_db_session() as session:
        result = session.execute(delete(table).where(table.c.id == row_id).where(table.c.team_id == team_id))
        if result.rowcount == 0:
            raise NotFoundError(f"{entity} not found")


def emit_entity_event(entity: str, action: str, entity_id: str, data: Dict[str, Any], team_id: str) -> None:
    from nextspark.features.webhooks.service import schedule_entity_webhook

    schedule_entity_webhook(entity, action, entity_id, data, team_id=team_id)
