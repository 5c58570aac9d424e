"""
nextspark/models/base.py

Shared pydantic base for API-facing models.

Python attributes stay snake_case; the JSON contract is camelCase
(teamId, blockSlug, entityId, ...).
"""

from typing import Any, Dict
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Frozen record returned by services and serialized by routers."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ApiRequest(BaseModel):
    """Mutable request body; accepts camelCase or snake_case keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def provided(self) -> Dict[str, Any]:
        """Only the fields the client actually sent (key presence, not truthiness)."""
        return {name: getattr(self, name) for name in self.model_fields_set}
