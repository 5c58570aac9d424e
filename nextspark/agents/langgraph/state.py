"""Shared state and records for the chat orchestration graph."""

import operator
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict

from pydantic import Field

from nextspark.models.base import ApiModel


ENTITY_INTENTS = ("task", "customer", "page")
SYSTEM_INTENTS = ("greeting", "clarification")

IntentType = Literal["task", "customer", "page", "greeting", "clarification"]
IntentAction = Literal["list", "create", "update", "delete", "search", "get", "unknown"]


class Intent(ApiModel):
    type: IntentType
    action: IntentAction = "unknown"
    parameters: Dict[str, Any] = Field(default_factory=dict)
    original_text: str = ""


class RouterOutput(ApiModel):
    intents: List[Intent] = Field(default_factory=list)
    needs_clarification: bool = False
    clarification_question: Optional[str] = None


def handler_result(
    intent_type: str,
    operation: str,
    *,
    success: bool = True,
    data: Any = None,
    count: Optional[int] = None,
    message: str = "",
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the JSON record a handler hands to the combiner."""
    return {
        "type": intent_type,
        "success": success,
        "operation": operation,
        "data": data,
        "count": count,
        "message": message,
        "error": error,
    }


class OrchestratorState(TypedDict, total=False):
    input: str
    user_id: str
    team_id: str
    intents: List[Dict[str, Any]]
    needs_clarification: bool
    clarification_question: Optional[str]
    # Handler nodes append; each entry is a handler_result() dict
    results: Annotated[List[Dict[str, Any]], operator.add]
    final_response: str
    error: Optional[str]
