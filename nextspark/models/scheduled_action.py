from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import Field

from nextspark.models.base import ApiModel


class ScheduledAction(ApiModel):
    id: str
    action_type: str
    # pending | running | completed | failed
    status: str = "pending"
    payload: Optional[Dict[str, Any]] = None
    team_id: Optional[str] = None
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    attempts: int = 0
    max_retries: int = 3
    recurring_interval: Optional[str] = None
    recurrence_type: Optional[str] = None
    lock_group: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActionError(ApiModel):
    action_id: str
    error: str


class ProcessResult(ApiModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[ActionError] = Field(default_factory=list)
