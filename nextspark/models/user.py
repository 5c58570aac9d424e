from datetime import datetime
from typing import Optional
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest


class User(ApiModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    # System role: member | superadmin | developer
    role: str = "member"
    created_at: datetime


class UserUpdateRequest(ApiRequest):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
