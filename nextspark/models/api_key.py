from datetime import datetime
from typing import Optional, List
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest


class ApiKey(ApiModel):
    """Stored key metadata; the secret itself is never persisted."""

    id: str
    key_prefix: str
    name: str
    user_id: str
    team_id: Optional[str] = None
    scopes: List[str] = Field(default_factory=list)
    status: str = "active"
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime


class ApiKeyCreated(ApiModel):
    api_key: ApiKey
    key: str = Field(description="Full key, shown only once")


class ApiKeyCreateRequest(ApiRequest):
    name: str = Field(min_length=1, max_length=255)
    scopes: List[str] = Field(min_length=1)
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=3650)
