"""
nextspark/features/teams/service.py

Team lifecycle.

Handles:
- Team creation (creator becomes owner, default subscription attached)
- Reads scoped to the caller's memberships
- Updates with the ownership-first rule, slug uniqueness
- Deletion (owner only)
"""

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.exc import IntegrityError

from nextspark.core.database import get_db_session, ensure_utc, new_id, team_members, teams, utc_now
from nextspark.core.errors import (
    ConflictError,
    NotFoundError,
    OwnerOnlyError,
    PermissionError,
    ValidationError,
)
from nextspark.features.permissions.service import has_permission
from nextspark.features.teams.members import insert_membership, require_membership, require_team_permission
from nextspark.models.team import Team, TeamRole


logger = logging.getLogger(__name__)

# Changing these requires being teams.owner_id, whatever the member role
OWNER_ONLY_FIELDS = frozenset({"name", "description"})
UPDATABLE_FIELDS = frozenset({"name", "slug", "description", "avatar_url", "settings"})


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug if len(slug) >= 2 else "team"


def _row_to_team(row, member_count: Optional[int] = None, user_role: Optional[str] = None) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        slug=row.slug,
        description=row.description,
        owner_id=row.owner_id,
        avatar_url=row.avatar_url,
        settings=row.settings,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        member_count=member_count,
        user_role=user_role,
    )


def is_slug_available(slug: str, exclude_team_id: Optional[str] = None) -> bool:
    with get_db_session() as session:
        stmt = select(teams.c.id).where(teams.c.slug == slug)
        if exclude_team_id:
            stmt = stmt.where(teams.c.id != exclude_team_id)
        return session.execute(stmt).first() is None


def _unique_slug(base: str) -> str:
    slug = base
    suffix = 2
    while not is_slug_available(slug):
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def create_team(user_id: str, name: str, slug: Optional[str] = None, description: Optional[str] = None) -> Team:
    """
    Create a team owned by `user_id`.

    An explicit slug must be free (409 otherwise); a derived slug gets a
    numeric suffix until it is.
    """
    from nextspark.features.billing.service import create_default_subscription
    from nextspark.features.usage.service import track_usage

    if not name or not name.strip():
        raise ValidationError("Team name is required")
    if slug:
        if not is_slug_available(slug):
            raise ConflictError("Slug already taken", code="SLUG_TAKEN")
    else:
        slug = _unique_slug(slugify(name))

    team_id = new_id()
    now = utc_now()
    try:
        with get_db_session() as session:
            session.execute(
                insert(teams).values(
                    id=team_id,
                    name=name.strip(),
                    slug=slug,
                    description=description,
                    owner_id=user_id,
                    settings={},
                    created_at=now,
                    updated_at=now,
                )
            )
            insert_membership(session, team_id, user_id, TeamRole.OWNER)
    except IntegrityError:
        raise ConflictError("Slug already taken", code="SLUG_TAKEN")

    try:
        create_default_subscription(team_id)
        track_usage(team_id, "team_members", 1)
    except NotFoundError:
        logger.warning("[teams] default plan missing, team has no subscription", extra={"team_id": team_id})

    logger.info("[teams] team created", extra={"team_id": team_id, "user_id": user_id})
    return get_team(team_id, user_id)


def get_team(team_id: str, user_id: str) -> Team:
    role = require_membership(team_id, user_id)
    with get_db_session() as session:
        row = session.execute(select(teams).where(teams.c.id == team_id)).first()
        count = session.execute(
            select(func.count()).select_from(team_members).where(team_members.c.team_id == team_id)
        ).scalar()
    if not row:
        raise NotFoundError("Team not found", code="TEAM_NOT_FOUND")
    return _row_to_team(row, member_count=int(count or 0), user_role=role.value)


def list_user_teams(user_id: str) -> List[Team]:
    with get_db_session() as session:
        rows = session.execute(
            select(teams, team_members.c.role.label("member_role"))
            .select_from(teams.join(team_members, team_members.c.team_id == teams.c.id))
            .where(team_members.c.user_id == user_id)
            .order_by(teams.c.created_at)
        ).fetchall()
    return [_row_to_team(row, user_role=row.member_role) for row in rows]


def update_team(team_id: str, user_id: str, fields: Dict[str, Any]) -> Team:
    """
    Apply a partial update.

    Membership comes first, so non-members get 404 even for an empty
    update. Ownership is checked before permissions: touching name or
    description (key presence, even with an empty value) requires being the
    owner and fails with OWNER_ONLY; every other field needs team.update.
    """
    role = require_membership(team_id, user_id)
    values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
    if not values:
        raise ValidationError("No fields to update", code="NO_FIELDS")

    with get_db_session() as session:
        row = session.execute(select(teams.c.owner_id).where(teams.c.id == team_id)).first()
    if not row:
        raise NotFoundError("Team not found", code="TEAM_NOT_FOUND")

    if OWNER_ONLY_FIELDS & values.keys():
        if row.owner_id != user_id:
            raise OwnerOnlyError("Only the team owner can change the team name or description")
    elif not has_permission(role, "team.update"):
        raise PermissionError("Permission denied for team.update", details={"role": role.value})

    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError("Team name cannot be empty")
    if values.get("slug") and not is_slug_available(values["slug"], exclude_team_id=team_id):
        raise ConflictError("Slug already taken", code="SLUG_TAKEN")

    try:
        with get_db_session() as session:
            session.execute(update(teams).where(teams.c.id == team_id).values(**values, updated_at=utc_now()))
    except IntegrityError:
        raise ConflictError("Slug already taken", code="SLUG_TAKEN")

    logger.info("[teams] team updated", extra={"team_id": team_id, "fields": sorted(values)})
    return get_team(team_id, user_id)


def delete_team(team_id: str, user_id: str) -> None:
    require_team_permission(team_id, user_id, "team.delete")
    with get_db_session() as session:
        session.execute(delete(teams).where(teams.c.id == team_id))
    logger.info("[teams] team deleted", extra={"team_id": team_id, "user_id": user_id})
