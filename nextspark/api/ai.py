"""
AI chat endpoint.

POST /api/v1/ai/chat {"message": "..."} routes the message through the
LangGraph orchestrator for the active team. The orchestrator can create,
update and delete entities, so API-key callers are refused.
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import Field

from nextspark.agents.langgraph.orchestrator import run_orchestrator
from nextspark.core.auth import TeamContext, get_team_context, require_session
from nextspark.core.responses import api_response
from nextspark.models.base import ApiRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


class ChatRequest(ApiRequest):
    message: str = Field(min_length=1, max_length=4000)


@router.post("/chat", dependencies=[Depends(require_session)])
def chat(body: ChatRequest, ctx: TeamContext = Depends(get_team_context)):
    result = run_orchestrator(body.message.strip(), ctx.user_id, ctx.team_id)
    logger.info(
        "[ai] chat handled",
        extra={"user_id": ctx.user_id, "team_id": ctx.team_id, "status": "ok" if result["success"] else "error"},
    )
    return api_response(result)
