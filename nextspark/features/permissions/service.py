"""
nextspark/features/permissions/service.py

Team RBAC.

Handles:
- Role hierarchy (owner > admin > member > viewer)
- Action -> allowed roles matrix for team and entity actions
- Permission lookups used by routers and the billing evaluator
"""

from typing import Dict, List, Optional, Tuple

from nextspark.models.team import TeamRole


ROLE_HIERARCHY: Dict[str, int] = {
    TeamRole.OWNER.value: 100,
    TeamRole.ADMIN.value: 50,
    TeamRole.MEMBER.value: 10,
    TeamRole.VIEWER.value: 1,
}

# System-level user roles that bypass team billing restrictions
BYPASS_USER_ROLES = frozenset({"superadmin", "developer"})

_ALL = ("owner", "admin", "member", "viewer")
_WRITERS = ("owner", "admin", "member")
_MANAGERS = ("owner", "admin")
_OWNER = ("owner",)

TEAM_PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    "team.view": _ALL,
    "team.members.view": _ALL,
    "team.settings.view": _MANAGERS,
    "team.billing.view": _MANAGERS,
    "team.edit": _OWNER,
    "team.update": _MANAGERS,
    "team.settings.edit": _MANAGERS,
    "team.billing.manage": _OWNER,
    "team.members.invite": _MANAGERS,
    "team.members.remove": _MANAGERS,
    "team.members.update_role": _OWNER,
    "team.delete": _OWNER,
}

ENTITY_PERMISSIONS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "tasks": {
        "create": _WRITERS,
        "read": _ALL,
        "list": _ALL,
        "update": _WRITERS,
        "delete": _MANAGERS,
    },
    "customers": {
        "create": _WRITERS,
        "read": _ALL,
        "list": _ALL,
        "update": _WRITERS,
        "delete": _MANAGERS,
    },
    "pages": {
        "create": _WRITERS,
        "read": _ALL,
        "list": _ALL,
        "update": _WRITERS,
        "delete": _MANAGERS,
        "publish": _MANAGERS,
    },
    "patterns": {
        "create": _MANAGERS,
        "read": _ALL,
        "list": _ALL,
        "update": _MANAGERS,
        "delete": _MANAGERS,
    },
    "api_keys": {
        "create": _MANAGERS,
        "read": _MANAGERS,
        "list": _MANAGERS,
        "delete": _MANAGERS,
    },
}


def _build_matrix() -> Dict[str, Tuple[str, ...]]:
    matrix = dict(TEAM_PERMISSIONS)
    for entity, actions in ENTITY_PERMISSIONS.items():
        for action, roles in actions.items():
            matrix[f"{entity}.{action}"] = roles
    return matrix


PERMISSION_MATRIX: Dict[str, Tuple[str, ...]] = _build_matrix()


def _role_value(role) -> Optional[str]:
    if role is None:
        return None
    return role.value if isinstance(role, TeamRole) else str(role)


def is_valid_role(role) -> bool:
    return _role_value(role) in ROLE_HIERARCHY


def is_valid_permission(action: str) -> bool:
    return action in PERMISSION_MATRIX


def has_permission(role, action: str) -> bool:
    """True when `role` may perform `action`.

    Unknown roles are denied. Actions absent from the matrix are unrestricted.
    """
    role_name = _role_value(role)
    if role_name not in ROLE_HIERARCHY:
        return False
    allowed_roles = PERMISSION_MATRIX.get(action)
    if allowed_roles is None:
        return True
    return role_name in allowed_roles


def get_role_level(role) -> int:
    return ROLE_HIERARCHY.get(_role_value(role), 0)


def has_min_hierarchy(role, level: int) -> bool:
    return get_role_level(role) >= level


def can_manage_role(actor_role, target_role) -> bool:
    """An actor may only assign/remove roles strictly below its own level."""
    return get_role_level(actor_role) > get_role_level(target_role)


def get_role_permissions(role) -> List[str]:
    role_name = _role_value(role)
    return sorted(action for action, roles in PERMISSION_MATRIX.items() if role_name in roles)
