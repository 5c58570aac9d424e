from datetime import datetime
from typing import Optional, List
from pydantic import Field

from nextspark.models.base import ApiModel, ApiRequest


class Customer(ApiModel):
    id: str
    team_id: str
    user_id: str
    name: str
    account: str = "Main"
    office: str = "Main"
    phone: Optional[str] = None
    salesperson: Optional[str] = None
    visit_days: Optional[List[str]] = None
    contact_days: Optional[List[str]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class CustomerCreateRequest(ApiRequest):
    name: str = Field(min_length=1, max_length=255)
    account: str = Field(default="Main", max_length=64)
    office: str = Field(default="Main", max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)
    salesperson: Optional[str] = None
    visit_days: Optional[List[str]] = None
    contact_days: Optional[List[str]] = None


class CustomerUpdateRequest(ApiRequest):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    account: Optional[str] = Field(default=None, max_length=64)
    office: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)
    salesperson: Optional[str] = None
    visit_days: Optional[List[str]] = None
    contact_days: Optional[List[str]] = None
