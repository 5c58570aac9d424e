from typing import Optional, Dict, Any
from pydantic import Field

from nextspark.models.base import ApiModel


class WebhookPayload(ApiModel):
    """Body POSTed to webhook endpoints."""

    event: str = Field(description="<entity>:<action>, e.g. task:created")
    entity: str
    entity_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    team_id: Optional[str] = None
    timestamp: str
    action_id: Optional[str] = None
