"""
Entity handler nodes.

Handlers execute routed intents directly against the CRUD services (no
extra LLM calls) and return JSON results for the combiner. Service errors
never escape a handler; they become failed results.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from nextspark.agents.langgraph.state import OrchestratorState, handler_result
from nextspark.features.customers import service as customers_service
from nextspark.features.pages import service as pages_service
from nextspark.features.tasks import service as tasks_service
from nextspark.features.teams.service import slugify

logger = logging.getLogger(__name__)

LIST_LIMIT = 50
SEARCH_LIMIT = 20

_PRIORITIES = ("low", "medium", "high", "urgent")
_STATUS_SYNONYMS = {
    "pending": "todo",
    "todo": "todo",
    "to-do": "todo",
    "in-progress": "in-progress",
    "inprogress": "in-progress",
    "doing": "in-progress",
    "review": "review",
    "done": "done",
    "completed": "done",
    "complete": "done",
    "finished": "done",
    "blocked": "blocked",
}


def normalize_priority(priority: Any) -> Optional[str]:
    if not priority:
        return None
    value = str(priority).strip().lower()
    return value if value in _PRIORITIES else None


def normalize_status(status: Any) -> Optional[str]:
    if not status:
        return None
    value = str(status).strip().lower().replace("_", "-").replace(" ", "-")
    return _STATUS_SYNONYMS.get(value)


def _task_data(task) -> Dict[str, Any]:
    data = task.to_api()
    return {k: data.get(k) for k in ("id", "title", "status", "priority", "dueDate", "description")}


def _customer_data(customer) -> Dict[str, Any]:
    data = customer.to_api()
    return {k: data.get(k) for k in ("id", "name", "account", "office", "phone", "salesperson")}


def _page_data(page) -> Dict[str, Any]:
    data = page.to_api()
    return {k: data.get(k) for k in ("id", "title", "slug", "locale", "status")}


def _missing(intent_type: str, operation: str, message: str, error: str) -> Dict[str, Any]:
    return handler_result(intent_type, operation, success=False, message=message, error=error)


# -- tasks --------------------------------------------------------------------

def _task_operation(action: str, params: Dict[str, Any], user_id: str, team_id: str) -> Dict[str, Any]:
    if action == "list":
        items, total = tasks_service.list_tasks(
            team_id,
            user_id,
            status=normalize_status(params.get("status")),
            priority=normalize_priority(params.get("priority")),
            limit=LIST_LIMIT,
        )
        return handler_result("task", "list", data=[_task_data(t) for t in items], count=total, message=f"Found {total} task(s)")

    if action == "search":
        query = params.get("query") or params.get("title")
        if query:
            items, _ = tasks_service.search_tasks(team_id, user_id, str(query), limit=SEARCH_LIMIT)
        else:
            items, _ = tasks_service.list_tasks(
                team_id,
                user_id,
                status=normalize_status(params.get("status")),
                priority=normalize_priority(params.get("priority")),
                limit=SEARCH_LIMIT,
            )
        return handler_result(
            "task", "search", data=[_task_data(t) for t in items], count=len(items), message=f"Found {len(items)} matching task(s)"
        )

    if action == "get":
        if not params.get("id"):
            return _missing("task", "get", "Task ID is required", "Missing task ID")
        task = tasks_service.get_task(team_id, user_id, str(params["id"]))
        return handler_result("task", "get", data=_task_data(task), message=f"Found task: {task.title}")

    if action == "create":
        if not params.get("title"):
            return _missing("task", "create", "Task title is required", "Missing title")
        task = tasks_service.create_task(
            team_id,
            user_id,
            {
                "title": params["title"],
                "description": params.get("description"),
                "priority": normalize_priority(params.get("priority")) or "medium",
                "status": normalize_status(params.get("status")) or "todo",
                "due_date": params.get("dueDate") or params.get("due_date"),
            },
        )
        return handler_result("task", "create", data=_task_data(task), message=f"Created task: {task.title}")

    if action == "update":
        if not params.get("id"):
            return _missing("task", "update", "Task ID is required", "Missing task ID")
        fields: Dict[str, Any] = {}
        if params.get("title"):
            fields["title"] = params["title"]
        if "description" in params:
            fields["description"] = params["description"]
        if params.get("priority"):
            fields["priority"] = normalize_priority(params["priority"])
        if params.get("status"):
            fields["status"] = normalize_status(params["status"])
        if params.get("dueDate"):
            fields["due_date"] = params["dueDate"]
        task = tasks_service.update_task(team_id, user_id, str(params["id"]), fields)
        return handler_result("task", "update", data=_task_data(task), message=f"Updated task: {task.title}")

    if action == "delete":
        if not params.get("id"):
            return _missing("task", "delete", "Task ID is required", "Missing task ID")
        tasks_service.delete_task(team_id, user_id, str(params["id"]))
        return handler_result("task", "delete", data={"id": params["id"]}, message="Task deleted")

    return _missing("task", "unknown", f"Unknown action: {action}", f"Unsupported action: {action}")


# -- customers ----------------------------------------------------------------

def _customer_operation(action: str, params: Dict[str, Any], user_id: str, team_id: str) -> Dict[str, Any]:
    if action == "list":
        items, total = customers_service.list_customers(team_id, user_id, limit=LIST_LIMIT)
        return handler_result(
            "customer", "list", data=[_customer_data(c) for c in items], count=total, message=f"Found {total} customer(s)"
        )

    if action == "search":
        query = params.get("query") or params.get("name")
        if not query:
            return _missing("customer", "search", "A search term is required", "Missing query")
        items, _ = customers_service.search_customers(team_id, user_id, str(query), limit=SEARCH_LIMIT)
        return handler_result(
            "customer", "search", data=[_customer_data(c) for c in items], count=len(items),
            message=f"Found {len(items)} matching customer(s)",
        )

    if action == "get":
        if not params.get("id"):
            return _missing("customer", "get", "Customer ID is required", "Missing customer ID")
        customer = customers_service.get_customer(team_id, user_id, str(params["id"]))
        return handler_result("customer", "get", data=_customer_data(customer), message=f"Found customer: {customer.name}")

    if action == "create":
        if not params.get("name"):
            return _missing("customer", "create", "Customer name is required", "Missing name")
        fields = {k: params.get(k) for k in ("name", "account", "office", "phone", "salesperson") if params.get(k)}
        customer = customers_service.create_customer(team_id, user_id, fields)
        return handler_result("customer", "create", data=_customer_data(customer), message=f"Created customer: {customer.name}")

    if action == "update":
        if not params.get("id"):
            return _missing("customer", "update", "Customer ID is required", "Missing customer ID")
        fields = {k: params[k] for k in ("name", "account", "office", "phone", "salesperson") if k in params}
        customer = customers_service.update_customer(team_id, user_id, str(params["id"]), fields)
        return handler_result("customer", "update", data=_customer_data(customer), message=f"Updated customer: {customer.name}")

    if action == "delete":
        if not params.get("id"):
            return _missing("customer", "delete", "Customer ID is required", "Missing customer ID")
        customers_service.delete_customer(team_id, user_id, str(params["id"]))
        return handler_result("customer", "delete", data={"id": params["id"]}, message="Customer deleted")

    return _missing("customer", "unknown", f"Unknown action: {action}", f"Unsupported action: {action}")


# -- pages --------------------------------------------------------------------

def _page_operation(action: str, params: Dict[str, Any], user_id: str, team_id: str) -> Dict[str, Any]:
    if action == "list":
        items, total = pages_service.list_pages(team_id, user_id, status=params.get("status"), limit=LIST_LIMIT)
        return handler_result("page", "list", data=[_page_data(p) for p in items], count=total, message=f"Found {total} page(s)")

    if action == "search":
        query = params.get("query") or params.get("title")
        if not query:
            return _missing("page", "search", "A search term is required", "Missing query")
        items, _ = pages_service.search_pages(team_id, user_id, str(query), limit=SEARCH_LIMIT)
        return handler_result(
            "page", "search", data=[_page_data(p) for p in items], count=len(items), message=f"Found {len(items)} matching page(s)"
        )

    if action == "get":
        if not params.get("id"):
            return _missing("page", "get", "Page ID is required", "Missing page ID")
        page = pages_service.get_page(team_id, user_id, str(params["id"]))
        return handler_result("page", "get", data=_page_data(page), message=f"Found page: {page.title}")

    if action == "create":
        if not params.get("title"):
            return _missing("page", "create", "Page title is required", "Missing title")
        page = pages_service.create_page(
            team_id,
            user_id,
            {
                "title": params["title"],
                "slug": params.get("slug") or slugify(str(params["title"])),
                "locale": params.get("locale"),
            },
        )
        return handler_result("page", "create", data=_page_data(page), message=f"Created page: {page.title}")

    if action == "update":
        if not params.get("id"):
            return _missing("page", "update", "Page ID is required", "Missing page ID")
        fields = {k: params[k] for k in ("title", "slug", "status") if k in params}
        page = pages_service.update_page(team_id, user_id, str(params["id"]), fields)
        return handler_result("page", "update", data=_page_data(page), message=f"Updated page: {page.title}")

    if action == "delete":
        if not params.get("id"):
            return _missing("page", "delete", "Page ID is required", "Missing page ID")
        pages_service.delete_page(team_id, user_id, str(params["id"]))
        return handler_result("page", "delete", data={"id": params["id"]}, message="Page deleted")

    return _missing("page", "unknown", f"Unknown action: {action}", f"Unsupported action: {action}")


OPERATIONS: Dict[str, Callable[[str, Dict[str, Any], str, str], Dict[str, Any]]] = {
    "task": _task_operation,
    "customer": _customer_operation,
    "page": _page_operation,
}


def execute_intent(intent: Dict[str, Any], user_id: str, team_id: str) -> Dict[str, Any]:
    """Run one intent; failures come back as unsuccessful results."""
    intent_type = intent["type"]
    action = intent.get("action") or "unknown"
    try:
        return OPERATIONS[intent_type](action, intent.get("parameters") or {}, user_id, team_id)
    except Exception as exc:
        message = getattr(exc, "message", None) or str(exc) or "Unknown error"
        logger.warning(f"[ai] {intent_type}.{action} failed: {message}", extra={"user_id": user_id, "team_id": team_id})
        return handler_result(
            intent_type, action, success=False, message=f"Failed to execute {action}: {message}", error=message
        )


def make_handler_node(intent_type: str):
    """Graph node that executes every routed intent of `intent_type`."""

    def handler_node(state: OrchestratorState) -> Dict[str, List[Dict[str, Any]]]:
        results = [
            execute_intent(intent, state["user_id"], state["team_id"])
            for intent in state.get("intents", [])
            if intent["type"] == intent_type
        ]
        return {"results": results}

    handler_node.__name__ = f"{intent_type}_handler"
    return handler_node
