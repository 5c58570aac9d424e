"""
Chat orchestration graph.

    router -> task_handler? -> customer_handler? -> page_handler? -> combiner
           +-> greeting | clarification | error_handler

Only handlers with routed intents run. The LLM is injected so tests can pass
a fake; by default a ChatGroq client is built from settings.
"""

import logging
from typing import Any, Dict, Optional

from langchain_groq import ChatGroq
from langgraph.graph import END, StateGraph

from nextspark.agents.langgraph.combiner import combine, is_spanish
from nextspark.agents.langgraph.handlers import make_handler_node
from nextspark.agents.langgraph.router import classify
from nextspark.agents.langgraph.state import ENTITY_INTENTS, OrchestratorState
from nextspark.core.config import settings
from nextspark.core.errors import AppError

logger = logging.getLogger(__name__)

GREETING_EN = "Hello! How can I help you? I can manage tasks, search customers, or look up pages."
GREETING_ES = "¡Hola! ¿En qué puedo ayudarte? Puedo gestionar tareas, buscar clientes o consultar páginas."
DEFAULT_CLARIFICATION = "Could you tell me a bit more about what you need?"
ERROR_RESPONSE = "Sorry, I couldn't process that request. Please try again."


def get_llm(temperature: float = 0.1):
    if not settings.GROQ_API_KEY:
        raise AppError("AI is not configured", code="AI_NOT_CONFIGURED", status_code=503)
    return ChatGroq(temperature=temperature, model_name=settings.AI_MODEL, api_key=settings.GROQ_API_KEY)


def _handler_node_name(intent_type: str) -> str:
    return f"{intent_type}_handler"


def next_step(state: OrchestratorState) -> str:
    """Next handler with pending intents, else the combiner."""
    routed = {intent["type"] for intent in state.get("intents", [])}
    done = {result["type"] for result in state.get("results", [])}
    for intent_type in ENTITY_INTENTS:
        if intent_type in routed and intent_type not in done:
            return _handler_node_name(intent_type)
    return "combiner"


def route_after_router(state: OrchestratorState) -> str:
    if state.get("error"):
        return "error_handler"
    if state.get("needs_clarification"):
        return "clarification"
    intents = state.get("intents", [])
    if any(intent["type"] == "clarification" for intent in intents) and not any(
        intent["type"] in ENTITY_INTENTS for intent in intents
    ):
        return "clarification"
    if not any(intent["type"] in ENTITY_INTENTS for intent in intents):
        return "greeting"
    return next_step(state)


def build_orchestrator_graph(llm):
    def router_node(state: OrchestratorState) -> Dict[str, Any]:
        try:
            decision = classify(llm, state["input"])
        except Exception as exc:
            logger.error(f"[ai] router failed: {exc}", extra={"user_id": state.get("user_id"), "team_id": state.get("team_id")})
            return {"error": str(exc), "intents": []}
        intents = [intent.model_dump() for intent in decision.intents]
        logger.info(f"[ai] routed {len(intents)} intent(s): {[(i['type'], i['action']) for i in intents]}")
        return {
            "intents": intents,
            "needs_clarification": decision.needs_clarification,
            "clarification_question": decision.clarification_question,
        }

    def combiner_node(state: OrchestratorState) -> Dict[str, Any]:
        return {"final_response": combine(llm, state["input"], state.get("results", []))}

    def greeting_node(state: OrchestratorState) -> Dict[str, Any]:
        return {"final_response": GREETING_ES if is_spanish(state["input"]) else GREETING_EN}

    def clarification_node(state: OrchestratorState) -> Dict[str, Any]:
        return {"final_response": state.get("clarification_question") or DEFAULT_CLARIFICATION}

    def error_node(state: OrchestratorState) -> Dict[str, Any]:
        return {"final_response": ERROR_RESPONSE}

    graph = StateGraph(OrchestratorState)
    graph.add_node("router", router_node)
    graph.add_node("combiner", combiner_node)
    graph.add_node("greeting", greeting_node)
    graph.add_node("clarification", clarification_node)
    graph.add_node("error_handler", error_node)

    handler_names = [_handler_node_name(t) for t in ENTITY_INTENTS]
    for intent_type in ENTITY_INTENTS:
        graph.add_node(_handler_node_name(intent_type), make_handler_node(intent_type))

    graph.set_entry_point("router")
    graph.add_conditional_edges(
        "router",
        route_after_router,
        {name: name for name in handler_names + ["combiner", "greeting", "clarification", "error_handler"]},
    )
    for name in handler_names:
        graph.add_conditional_edges(name, next_step, {n: n for n in handler_names + ["combiner"]})

    for terminal in ("combiner", "greeting", "clarification", "error_handler"):
        graph.add_edge(terminal, END)

    return graph.compile()


def run_orchestrator(message: str, user_id: str, team_id: str, llm: Optional[Any] = None) -> Dict[str, Any]:
    """Process one chat message for a team member.

    Returns {success, response, intents, results}.
    """
    graph = build_orchestrator_graph(llm or get_llm())
    final = graph.invoke(
        {
            "input": message,
            "user_id": user_id,
            "team_id": team_id,
            "intents": [],
            "results": [],
            "needs_clarification": False,
            "clarification_question": None,
            "error": None,
        }
    )
    return {
        "success": not final.get("error"),
        "response": final.get("final_response", ""),
        "intents": [
            {
                "type": intent["type"],
                "action": intent["action"],
                "parameters": intent.get("parameters", {}),
                "originalText": intent.get("original_text", ""),
            }
            for intent in final.get("intents", [])
        ],
        "results": final.get("results", []),
    }
