"""
nextspark/features/patterns/usage.py

Tracks which entities embed which patterns.

Handles:
- Diff-based sync after an entity save (one bulk insert, one bulk delete)
- Cleanup when an entity or pattern goes away
- Usage counts and listings enriched with entity title/slug/status

Sync and cleanup are best effort: failures are logged and never fail
the entity save that triggered them.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete, func

from nextspark.core.database import dialect_name, ensure_utc, get_db_session, new_id, pages, pattern_usages, utc_now
from nextspark.features.blocks.service import extract_pattern_ids
from nextspark.models.pattern import PatternUsage, PatternUsageCount, PatternUsageWithEntityInfo


logger = logging.getLogger(__name__)

# entity_type -> table carrying title/slug/status/updated_at
ENTITY_TABLES = {
    "pages": pages,
}


def _insert_ignore_duplicates(table):
    """INSERT ... ON CONFLICT DO NOTHING for the active dialect."""
    if dialect_name() == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    return dialect_insert(table).on_conflict_do_nothing()


def sync_usages(entity_type: str, entity_id: str, blocks: Optional[Sequence[Any]], team_id: str) -> None:
    try:
        current = set(extract_pattern_ids(blocks))
        with get_db_session() as session:
            existing = {
                row[0]
                for row in session.execute(
                    select(pattern_usages.c.pattern_id)
                    .where(pattern_usages.c.entity_type == entity_type)
                    .where(pattern_usages.c.entity_id == entity_id)
                ).fetchall()
            }
            to_add = current - existing
            to_remove = existing - current

            if to_remove:
                session.execute(
                    delete(pattern_usages)
                    .where(pattern_usages.c.entity_type == entity_type)
                    .where(pattern_usages.c.entity_id == entity_id)
                    .where(pattern_usages.c.pattern_id.in_(sorted(to_remove)))
                )
            if to_add:
                now = utc_now()
                session.execute(
                    _insert_ignore_duplicates(pattern_usages),
                    [
                        {
                            "id": new_id(),
                            "pattern_id": pattern_id,
                            "entity_type": entity_type,
                            "entity_id": entity_id,
                            "team_id": team_id,
                            "created_at": now,
                        }
                        for pattern_id in sorted(to_add)
                    ],
                )
        logger.info("[patterns] synced usages for %s/%s: +%d -%d", entity_type, entity_id, len(to_add), len(to_remove))
    except Exception:
        logger.error("[patterns] error syncing usages for %s/%s", entity_type, entity_id, exc_info=True)


def remove_entity_usages(entity_type: str, entity_id: str) -> None:
    try:
        with get_db_session() as session:
            session.execute(
                delete(pattern_usages)
                .where(pattern_usages.c.entity_type == entity_type)
                .where(pattern_usages.c.entity_id == entity_id)
            )
        logger.info("[patterns] removed usages for %s/%s", entity_type, entity_id)
    except Exception:
        logger.error("[patterns] error removing usages for %s/%s", entity_type, entity_id, exc_info=True)


def remove_pattern_usages(pattern_id: str) -> None:
    try:
        with get_db_session() as session:
            session.execute(delete(pattern_usages).where(pattern_usages.c.pattern_id == pattern_id))
    except Exception:
        logger.error("[patterns] error removing usages of pattern %s", pattern_id, exc_info=True)


def get_usage_count(pattern_id: str) -> int:
    with get_db_session() as session:
        return int(
            session.execute(
                select(func.count()).select_from(pattern_usages).where(pattern_usages.c.pattern_id == pattern_id)
            ).scalar()
            or 0
        )


def get_usage_counts(pattern_id: str) -> List[PatternUsageCount]:
    count_col = func.count().label("count")
    with get_db_session() as session:
        rows = session.execute(
            select(pattern_usages.c.entity_type, count_col)
            .where(pattern_usages.c.pattern_id == pattern_id)
            .group_by(pattern_usages.c.entity_type)
            .order_by(count_col.desc(), pattern_usages.c.entity_type)
        ).fetchall()
    return [PatternUsageCount(entity_type=row.entity_type, count=int(row.count)) for row in rows]


def _entity_info(session, entity_type: str, entity_ids: List[str]) -> Dict[str, Any]:
    table = ENTITY_TABLES.get(entity_type)
    if table is None or not entity_ids:
        return {}
    rows = session.execute(
        select(table.c.id, table.c.title, table.c.slug, table.c.status, table.c.updated_at).where(
            table.c.id.in_(entity_ids)
        )
    ).fetchall()
    return {row.id: row for row in rows}


def get_usages_with_entity_info(
    pattern_id: str,
    entity_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    """Returns {"usages", "counts", "total"}; total honours the entity_type filter."""
    where = [pattern_usages.c.pattern_id == pattern_id]
    if entity_type:
        where.append(pattern_usages.c.entity_type == entity_type)

    with get_db_session() as session:
        total = session.execute(select(func.count()).select_from(pattern_usages).where(*where)).scalar() or 0
        rows = session.execute(
            select(pattern_usages)
            .where(*where)
            .order_by(pattern_usages.c.created_at.desc())
            .limit(limit)
            .offset(offset)
        ).fetchall()

        by_type: Dict[str, List[str]] = {}
        for row in rows:
            by_type.setdefault(row.entity_type, []).append(row.entity_id)
        info = {etype: _entity_info(session, etype, ids) for etype, ids in by_type.items()}

    usages = []
    for row in rows:
        entity = info.get(row.entity_type, {}).get(row.entity_id)
        usages.append(
            PatternUsageWithEntityInfo(
                id=row.id,
                pattern_id=row.pattern_id,
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                team_id=row.team_id,
                created_at=ensure_utc(row.created_at),
                entity_title=entity.title if entity else None,
                entity_slug=entity.slug if entity else None,
                entity_status=entity.status if entity else None,
                entity_updated_at=ensure_utc(entity.updated_at) if entity else None,
            )
        )

    return {"usages": usages, "counts": get_usage_counts(pattern_id), "total": int(total)}


def list_entity_usages(entity_type: str, entity_id: str) -> List[PatternUsage]:
    with get_db_session() as session:
        rows = session.execute(
            select(pattern_usages)
            .where(pattern_usages.c.entity_type == entity_type)
            .where(pattern_usages.c.entity_id == entity_id)
            .order_by(pattern_usages.c.pattern_id)
        ).fetchall()
    return [
        PatternUsage(
            id=row.id,
            pattern_id=row.pattern_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            team_id=row.team_id,
            created_at=ensure_utc(row.created_at),
        )
        for row in rows
    ]
