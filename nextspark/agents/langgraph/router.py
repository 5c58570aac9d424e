"""
Intent router.

One LLM call classifies the user message into every intent it contains.
The reply must be JSON; it is extracted from the raw text (code fences and
surrounding prose are tolerated) and validated with pydantic. Invalid
replies are retried up to AI_ROUTER_MAX_RETRIES times.
"""

import json
import logging
import re
from typing import Any, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError as PydanticValidationError

from nextspark.agents.langgraph.state import RouterOutput
from nextspark.core.config import settings

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

ROUTER_PROMPT = """You are an intent classifier for a multi-agent assistant. Analyze the user message and extract ALL intents.

IMPORTANT: You MUST respond with valid JSON only. No additional text or explanation.

## Intent Types
- task: Create, list, search, update or delete tasks
- customer: Create, list, search, update or delete customers
- page: List, search, create, update or delete website pages
- greeting: Greeting or small talk
- clarification: Request is too vague to understand

## Rules
1. Extract ALL intents if the user asks for multiple things
2. Be specific with parameters (title, priority, status, query, name, id, ...)
3. Preserve the user's language for clarification questions
4. Use clarification only when truly unclear
5. Map originalText to the relevant portion of the message

## JSON Output Format
{
  "intents": [
    {
      "type": "task" | "customer" | "page" | "greeting" | "clarification",
      "action": "list" | "create" | "update" | "delete" | "search" | "get" | "unknown",
      "parameters": {},
      "originalText": "portion of user message"
    }
  ],
  "needsClarification": false,
  "clarificationQuestion": null
}

## Examples
User: "Show me my tasks"
Response: {"intents": [{"type": "task", "action": "list", "parameters": {}, "originalText": "Show me my tasks"}], "needsClarification": false}

User: "Create task 'Call supplier' high priority and find customer Acme"
Response: {"intents": [{"type": "task", "action": "create", "parameters": {"title": "Call supplier", "priority": "high"}, "originalText": "Create task 'Call supplier' high priority"}, {"type": "customer", "action": "search", "parameters": {"query": "Acme"}, "originalText": "find customer Acme"}], "needsClarification": false}

User: "Hello"
Response: {"intents": [{"type": "greeting", "action": "unknown", "parameters": {}, "originalText": "Hello"}], "needsClarification": false}
"""


class RouterError(RuntimeError):
    """Raised when no attempt produced a valid routing decision."""


def extract_json(text: str) -> str:
    """Pull the JSON object out of a model reply that may carry markdown or prose."""
    match = _CODE_BLOCK_RE.search(text)
    if match:
        return match.group(1).strip()
    match = _JSON_OBJECT_RE.search(text)
    if match:
        return match.group(0)
    return text


def _content_text(reply: Any) -> str:
    content = getattr(reply, "content", reply)
    if isinstance(content, str):
        return content
    return json.dumps(content)


def parse_router_output(text: str) -> Optional[RouterOutput]:
    try:
        return RouterOutput.model_validate(json.loads(extract_json(text)))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        logger.warning(f"[router] invalid router output: {exc}")
        return None


def classify(llm, message: str, history: Optional[List[Any]] = None, max_retries: Optional[int] = None) -> RouterOutput:
    """Classify `message` into intents. Raises RouterError after all attempts fail."""
    attempts = max_retries or settings.AI_ROUTER_MAX_RETRIES
    messages = [SystemMessage(content=ROUTER_PROMPT), *(history or []), HumanMessage(content=message)]

    for attempt in range(1, attempts + 1):
        if attempt > 1:
            logger.info(f"[router] retry attempt {attempt}/{attempts}")
        try:
            reply = llm.invoke(messages)
        except Exception as exc:
            logger.warning(f"[router] model call failed: {exc}")
            continue
        result = parse_router_output(_content_text(reply))
        if result is not None:
            return result

    raise RouterError("Router failed after all retry attempts")
