"""
nextspark/models/team.py
Team and membership models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class TeamRole(str, Enum):
    """Team roles, highest first: owner > admin > member > viewer"""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class Team(ApiModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    owner_id: str
    avatar_url: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    # Computed on read
    member_count: Optional[int] = None
    user_role: Optional[TeamRole] = None


class TeamMember(ApiModel):
    id: str
    team_id: str
    user_id: str
    role: TeamRole
    joined_at: datetime
    email: Optional[str] = None
    name: Optional[str] = None


class TeamCreateRequest(ApiRequest):
    name: str = Field(min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=64, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=500)


class TeamUpdateRequest(ApiRequest):
    """name/description are owner-only; the rest needs team.update."""

    name: Optional[str] = Field(default=None, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=64, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class MemberAddRequest(ApiRequest):
    user_id: str = Field(min_length=1)
    role: TeamRole = TeamRole.MEMBER


class MemberRoleUpdateRequest(ApiRequest):
    role: TeamRole
