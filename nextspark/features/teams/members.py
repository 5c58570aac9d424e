"""
nextspark/features/teams/members.py

Team membership.

Handles:
- Membership lookups used for row-level scoping
- Adding members (team_members quota), role changes, removal
- Owner protection: the owner can never be removed or demoted
"""

import logging
from typing import List, Optional, Union

from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.exc import IntegrityError

from nextspark.core.database import get_db_session, ensure_utc, new_id, team_members, users, utc_now
from nextspark.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from nextspark.features.permissions.service import can_manage_role, has_permission
from nextspark.models.team import TeamMember, TeamRole


logger = logging.getLogger(__name__)


def get_member_role(team_id: str, user_id: str) -> Optional[TeamRole]:
    with get_db_session() as session:
        row = session.execute(
            select(team_members.c.role)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
        ).first()
        return TeamRole(row[0]) if row else None


def require_membership(team_id: str, user_id: str) -> TeamRole:
    """Role of a member; non-members get the same 404 as a missing team."""
    role = get_member_role(team_id, user_id)
    if role is None:
        raise NotFoundError("Team not found", code="TEAM_NOT_FOUND")
    return role


def require_team_permission(team_id: str, user_id: str, action: str) -> TeamRole:
    role = require_membership(team_id, user_id)
    if not has_permission(role, action):
        raise PermissionError(f"Permission denied for {action}", details={"action": action, "role": role.value})
    return role


def count_members(team_id: str) -> int:
    with get_db_session() as session:
        return int(
            session.execute(
                select(func.count()).select_from(team_members).where(team_members.c.team_id == team_id)
            ).scalar()
            or 0
        )


def list_members(team_id: str) -> List[TeamMember]:
    with get_db_session() as session:
        rows = session.execute(
            select(team_members, users.c.email, users.c.name)
            .select_from(team_members.outerjoin(users, team_members.c.user_id == users.c.id))
            .where(team_members.c.team_id == team_id)
            .order_by(team_members.c.joined_at)
        ).fetchall()
    return [
        TeamMember(
            id=row.id,
            team_id=row.team_id,
            user_id=row.user_id,
            role=row.role,
            joined_at=ensure_utc(row.joined_at),
            email=row.email,
            name=row.name,
        )
        for row in rows
    ]


def get_member(team_id: str, user_id: str) -> Optional[TeamMember]:
    for member in list_members(team_id):
        if member.user_id == user_id:
            return member
    return None


def insert_membership(session, team_id: str, user_id: str, role: Union[TeamRole, str]) -> None:
    role = TeamRole(role)
    session.execute(
        insert(team_members).values(
            id=new_id(),
            team_id=team_id,
            user_id=user_id,
            role=role.value,
            joined_at=utc_now(),
        )
    )


def add_member(team_id: str, actor_id: str, user_id: str, role: Union[TeamRole, str] = TeamRole.MEMBER) -> TeamMember:
    """
    Add an existing user to the team.

    Requires team.members.invite plus room in the team_members quota.
    Nobody can be added as owner; actors only grant roles below their own.
    """
    from nextspark.features.billing.enforcement import enforce_action
    from nextspark.features.usage.service import track_usage
    from nextspark.features.users.service import get_user

    role = TeamRole(role)
    actor_role = require_team_permission(team_id, actor_id, "team.members.invite")
    if role == TeamRole.OWNER:
        raise ValidationError("A team has exactly one owner")
    if not can_manage_role(actor_role, role):
        raise PermissionError(f"Cannot assign role {role.value}")
    if not get_user(user_id):
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    if get_member_role(team_id, user_id) is not None:
        raise ConflictError("User is already a member", code="ALREADY_MEMBER")

    enforce_action(actor_id, team_id, "team.members.invite")

    try:
        with get_db_session() as session:
            insert_membership(session, team_id, user_id, role)
    except IntegrityError:
        raise ConflictError("User is already a member", code="ALREADY_MEMBER")

    track_usage(team_id, "team_members", 1)
    logger.info("[teams] member added", extra={"team_id": team_id, "user_id": user_id, "role": role.value})
    return get_member(team_id, user_id)


def update_member_role(team_id: str, actor_id: str, user_id: str, role: Union[TeamRole, str]) -> TeamMember:
    role = TeamRole(role)
    require_team_permission(team_id, actor_id, "team.members.update_role")
    target_role = require_target(team_id, user_id)
    if target_role == TeamRole.OWNER:
        raise PermissionError("The team owner's role cannot be changed", code="OWNER_PROTECTED")
    if role == TeamRole.OWNER:
        raise ValidationError("Ownership transfer is not supported")

    with get_db_session() as session:
        session.execute(
            update(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
            .values(role=role.value)
        )
    logger.info("[teams] member role updated", extra={"team_id": team_id, "user_id": user_id, "role": role.value})
    return get_member(team_id, user_id)


def require_target(team_id: str, user_id: str) -> TeamRole:
    role = get_member_role(team_id, user_id)
    if role is None:
        raise NotFoundError("Member not found", code="MEMBER_NOT_FOUND")
    return role


def remove_member(team_id: str, actor_id: str, user_id: str) -> None:
    """Remove a member; members may always leave, the owner never."""
    from nextspark.features.usage.service import track_usage

    actor_role = require_membership(team_id, actor_id)
    target_role = require_target(team_id, user_id)
    if target_role == TeamRole.OWNER:
        raise PermissionError("The team owner cannot be removed", code="OWNER_PROTECTED")
    if actor_id != user_id:
        if not has_permission(actor_role, "team.members.remove"):
            raise PermissionError("Permission denied for team.members.remove")
        if not can_manage_role(actor_role, target_role):
            raise PermissionError(f"Cannot remove a member with role {target_role.value}")

    with get_db_session() as session:
        session.execute(
            delete(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
        )
    track_usage(team_id, "team_members", -1)
    logger.info("[teams] member removed", extra={"team_id": team_id, "user_id": user_id})
