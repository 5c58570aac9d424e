"""
nextspark/models/pattern.py
Reusable block-tree fragments and the rows that track where they are used.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest
from nextspark.models.team import SLUG_PATTERN


class Pattern(ApiModel):
    id: str
    team_id: str
    user_id: str
    title: str
    slug: str
    description: Optional[str] = None
    status: str = "draft"
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None


class PatternCreateRequest(ApiRequest):
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    status: str = Field(default="draft", pattern=r"^(draft|published)$")
    blocks: List[Dict[str, Any]] = Field(default_factory=list)


class PatternUpdateRequest(ApiRequest):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern=r"^(draft|published)$")
    blocks: Optional[List[Dict[str, Any]]] = None


class PatternUsage(ApiModel):
    id: str
    pattern_id: str
    entity_type: str
    entity_id: str
    team_id: str
    created_at: datetime


class PatternUsageWithEntityInfo(PatternUsage):
    entity_title: Optional[str] = None
    entity_slug: Optional[str] = None
    entity_status: Optional[str] = None
    entity_updated_at: Optional[datetime] = None


class PatternUsageCount(ApiModel):
    entity_type: str
    count: int
