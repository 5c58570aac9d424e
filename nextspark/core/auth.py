"""
Auth utilities for the NextSpark API.

Resolves the caller from, in order:
1. API key (x-api-key header, or Bearer sk_...)
2. Session JWT (Bearer <HS256 token signed with AUTH_SECRET>)
3. X-User-Id header (development/tests, when ALLOW_HEADER_AUTH)

Team-scoped routes additionally resolve the team from x-team-id (or the
API key's team) and require membership.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

import jwt
from fastapi import Depends, Header, Request

from nextspark.core.config import settings
from nextspark.core.errors import AuthenticationError, PermissionError, TeamContextRequiredError
from nextspark.core.logging import bind_team_id
from nextspark.features.api_keys.service import has_scope, looks_like_api_key
from nextspark.models.api_key import ApiKey
from nextspark.models.team import TeamRole

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    # jwt | api_key | header
    method: str
    api_key: Optional[ApiKey] = None
    scopes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TeamContext:
    user_id: str
    team_id: str
    role: TeamRole
    auth: AuthContext


def issue_token(user_id: str, email: Optional[str] = None, ttl_seconds: Optional[int] = None) -> str:
    """Sign a session token for `user_id`."""
    if not settings.AUTH_SECRET:
        raise RuntimeError("AUTH_SECRET is not configured")
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds or settings.AUTH_TOKEN_TTL_SECONDS),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.AUTH_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify a session JWT and return its claims.

    Raises:
        AuthenticationError: Invalid, expired or unverifiable token
    """
    if not settings.AUTH_SECRET:
        raise AuthenticationError("Token authentication is not configured")
    try:
        claims = jwt.decode(token, settings.AUTH_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    if not claims.get("sub"):
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    return claims


def _authenticate_api_key(key: str) -> AuthContext:
    from nextspark.core.database import get_db_session
    from nextspark.features.api_keys.service import validate_api_key

    with get_db_session() as session:
        api_key = validate_api_key(session, key)
    if not api_key:
        raise AuthenticationError("Invalid API key", code="INVALID_API_KEY")
    return AuthContext(user_id=api_key.user_id, method="api_key", api_key=api_key, scopes=api_key.scopes)


def _header_auth_allowed() -> bool:
    return settings.ALLOW_HEADER_AUTH and (settings.ENV or "").lower() != "production"


async def get_auth_context(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None, description="Development/test user ID"),
) -> AuthContext:
    """
    Resolve the authenticated caller.

    Raises:
        AuthenticationError (401): Missing or invalid credentials
    """
    from nextspark.features.users.service import get_or_create_user

    auth_header = request.headers.get("Authorization", "")
    bearer = auth_header[7:].strip() if auth_header.startswith("Bearer ") else None

    if x_api_key:
        return _authenticate_api_key(x_api_key)
    if bearer and looks_like_api_key(bearer):
        return _authenticate_api_key(bearer)

    if bearer:
        claims = verify_token(bearer)
        get_or_create_user(claims["sub"], email=claims.get("email"), name=claims.get("name"))
        return AuthContext(user_id=claims["sub"], method="jwt")

    if x_user_id and _header_auth_allowed():
        get_or_create_user(x_user_id)
        return AuthContext(user_id=x_user_id, method="header")

    raise AuthenticationError("Missing Authorization (Bearer token or API key)")


async def get_current_user_id(auth: AuthContext = Depends(get_auth_context)) -> str:
    return auth.user_id


async def get_team_context(
    auth: AuthContext = Depends(get_auth_context),
    x_team_id: Optional[str] = Header(None),
) -> TeamContext:
    """
    Resolve the active team for team-scoped routes.

    Raises:
        TeamContextRequiredError (400): No x-team-id and no team-bound API key
        PermissionError (403): API key bound to another team
        NotFoundError (404): Caller is not a member of the team
    """
    from nextspark.features.teams.members import require_membership

    key_team = auth.api_key.team_id if auth.api_key else None
    team_id = x_team_id or key_team
    if not team_id:
        raise TeamContextRequiredError("Team context required. Send the x-team-id header.")
    if key_team and team_id != key_team:
        raise PermissionError("API key is not valid for this team")

    role = require_membership(team_id, auth.user_id)
    bind_team_id(team_id)
    return TeamContext(user_id=auth.user_id, team_id=team_id, role=role, auth=auth)


def require_scope(scope: str):
    """Dependency factory: API-key callers must hold `scope`; session callers pass."""
    async def _check(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.method == "api_key" and not has_scope(auth.scopes, scope):
            raise PermissionError(f"API key is missing scope {scope}", code="INSUFFICIENT_SCOPE")
        return auth

    return _check


async def require_session(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Dependency: reject API-key callers outright (user-level actions)."""
    if auth.method == "api_key":
        raise PermissionError("This endpoint requires a session login", code="SESSION_REQUIRED")
    return auth
