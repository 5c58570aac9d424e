from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest
from nextspark.models.team import SLUG_PATTERN


class PageStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Page(ApiModel):
    id: str
    team_id: str
    user_id: str
    title: str
    slug: str
    locale: str = "en"
    status: PageStatus = PageStatus.DRAFT
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class PageCreateRequest(ApiRequest):
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255, pattern=SLUG_PATTERN)
    locale: str = Field(default="en", min_length=2, max_length=16)
    status: PageStatus = PageStatus.DRAFT
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    seo_title: Optional[str] = Field(default=None, max_length=255)
    seo_description: Optional[str] = None


class PageUpdateRequest(ApiRequest):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=255, pattern=SLUG_PATTERN)
    locale: Optional[str] = Field(default=None, min_length=2, max_length=16)
    status: Optional[PageStatus] = None
    blocks: Optional[List[Dict[str, Any]]] = None
    seo_title: Optional[str] = Field(default=None, max_length=255)
    seo_description: Optional[str] = None
