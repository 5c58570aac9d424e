"""
Response combiner.

Turns handler results into the reply shown to the user. A single simple
result is formatted from templates; anything else goes through one LLM
synthesis call, falling back to the templates if that call fails.
"""

import json
import logging
from typing import Any, Dict, List

from langchain_core.messages import HumanMessage, SystemMessage

logger = logging.getLogger(__name__)

MAX_TEMPLATE_ITEMS = 5

COMBINER_PROMPT = """You are a response synthesizer that converts JSON operation results into natural language for users.

Given the original user request and the results of the operations, write a clear response that:
1. Summarizes ALL results
2. Uses the same language as the user
3. Is concise but complete
4. Includes relevant data (names, titles, counts, specific values)

Each result has: type, success, operation, data, count, message, error.

Rules:
- Return ONLY the response text. No JSON, no markdown code blocks.
- Use bullet points for lists (max 5-7 items, summarize if more).
- Explain failures plainly without exposing error codes or internal messages.
"""

_SPANISH_HINTS = (
    "hola", "muéstrame", "muestrame", "mis ", "tareas", "clientes", "crear", "buscar",
    "encontrar", "cuál", "qué", "número", "cuenta", "por favor", "gracias", "dame",
)


def is_spanish(text: str) -> bool:
    lower = text.lower()
    return any(hint in lower for hint in _SPANISH_HINTS)


def can_use_template(results: List[Dict[str, Any]]) -> bool:
    if len(results) != 1:
        return False
    result = results[0]
    if result["operation"] in ("list", "search"):
        data = result.get("data") if isinstance(result.get("data"), list) else []
        return len(data) <= MAX_TEMPLATE_ITEMS
    return result["operation"] in ("get", "create", "update", "delete")


def _as_list(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    return [data] if data else []


def _first(data: Any) -> Dict[str, Any]:
    items = _as_list(data)
    return items[0] if items else {}


def _more(items: List[Any], spanish: bool) -> str:
    extra = len(items) - MAX_TEMPLATE_ITEMS
    if extra <= 0:
        return ""
    return f"\n... y {extra} más" if spanish else f"\n... and {extra} more"


def _format_task(result: Dict[str, Any], spanish: bool) -> str:
    operation, data = result["operation"], result.get("data")
    if operation in ("list", "search"):
        tasks = _as_list(data)
        if not tasks:
            return "No se encontraron tareas." if spanish else "No tasks found."
        count = result.get("count") or len(tasks)
        header = f"Encontré {count} tarea(s):" if spanish else f"Found {count} task(s):"
        lines = []
        for task in tasks[:MAX_TEMPLATE_ITEMS]:
            priority = f" ({task['priority']})" if task.get("priority") else ""
            status = f" - {task['status']}" if task.get("status") else ""
            lines.append(f"• {task.get('title')}{priority}{status}")
        return header + "\n" + "\n".join(lines) + _more(tasks, spanish)

    task = _first(data)
    if operation == "create":
        return f'Tarea creada: "{task.get("title")}"' if spanish else f'Task created: "{task.get("title")}"'
    if operation == "update":
        return f'Tarea actualizada: "{task.get("title")}"' if spanish else f'Task updated: "{task.get("title")}"'
    if operation == "delete":
        return "Tarea eliminada." if spanish else "Task deleted."
    if operation == "get":
        if not task:
            return "Tarea no encontrada." if spanish else "Task not found."
        status = task.get("status") or ("sin estado" if spanish else "no status")
        priority = task.get("priority") or ("media" if spanish else "medium")
        if spanish:
            return f'Tarea: "{task.get("title")}" - {status}, prioridad {priority}'
        return f'Task: "{task.get("title")}" - {status}, {priority} priority'
    return result.get("message") or ""


def _format_customer(result: Dict[str, Any], spanish: bool) -> str:
    operation, data = result["operation"], result.get("data")
    if operation == "search":
        customers = _as_list(data)
        if not customers:
            return "No se encontraron clientes con ese criterio." if spanish else "No customers found matching that criteria."
        if len(customers) == 1:
            customer = customers[0]
            info = []
            if customer.get("account"):
                info.append(f"{'Cuenta' if spanish else 'Account'}: {customer['account']}")
            if customer.get("phone"):
                info.append(f"{'Tel' if spanish else 'Phone'}: {customer['phone']}")
            if customer.get("office"):
                info.append(f"{'Oficina' if spanish else 'Office'}: {customer['office']}")
            return customer.get("name", "") + (" - " + ", ".join(info) if info else "")
        count = result.get("count") or len(customers)
        header = f"Encontré {count} cliente(s):" if spanish else f"Found {count} customer(s):"
        lines = [
            f"• {c.get('name')}" + (f" ({c['account']})" if c.get("account") else "")
            for c in customers[:MAX_TEMPLATE_ITEMS]
        ]
        return header + "\n" + "\n".join(lines) + _more(customers, spanish)

    if operation == "list":
        customers = _as_list(data)
        if not customers:
            return "No hay clientes registrados." if spanish else "No customers registered."
        count = result.get("count") or len(customers)
        header = f"Hay {count} cliente(s):" if spanish else f"There are {count} customer(s):"
        lines = [f"• {c.get('name')}" for c in customers[:MAX_TEMPLATE_ITEMS]]
        return header + "\n" + "\n".join(lines) + _more(customers, spanish)

    customer = _first(data)
    if operation == "create":
        return f'Cliente creado: "{customer.get("name")}"' if spanish else f'Customer created: "{customer.get("name")}"'
    if operation == "update":
        return f'Cliente actualizado: "{customer.get("name")}"' if spanish else f'Customer updated: "{customer.get("name")}"'
    if operation == "delete":
        return "Cliente eliminado." if spanish else "Customer deleted."
    return result.get("message") or ""


def _format_page(result: Dict[str, Any], spanish: bool) -> str:
    operation, data = result["operation"], result.get("data")
    if operation == "delete":
        return "Página eliminada." if spanish else "Page deleted."
    pages = _as_list(data)
    titles = ", ".join(str(p.get("title")) for p in pages[:MAX_TEMPLATE_ITEMS])
    if operation == "create":
        return f'Página creada: "{titles}"' if spanish else f'Page created: "{titles}"'
    if operation == "update":
        return f'Página actualizada: "{titles}"' if spanish else f'Page updated: "{titles}"'
    if not pages:
        return "No se encontraron páginas." if spanish else "No pages found."
    return f"Encontré {len(pages)} página(s): {titles}" if spanish else f"Found {len(pages)} page(s): {titles}"


_FORMATTERS = {
    "task": _format_task,
    "customer": _format_customer,
    "page": _format_page,
}


def format_result(result: Dict[str, Any], spanish: bool = False) -> str:
    if not result["success"]:
        if spanish:
            return f"No pude completar la operación: {result.get('message')}"
        return f"I couldn't complete the operation: {result.get('message')}"
    return _FORMATTERS[result["type"]](result, spanish)


def format_results(results: List[Dict[str, Any]], spanish: bool = False) -> str:
    return "\n\n".join(format_result(result, spanish) for result in results)


def synthesize(llm, message: str, results: List[Dict[str, Any]]) -> str:
    payload = json.dumps({"originalRequest": message, "results": results}, default=str)
    reply = llm.invoke([SystemMessage(content=COMBINER_PROMPT), HumanMessage(content=payload)])
    text = getattr(reply, "content", reply)
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Empty combiner response")
    return text.strip()


def combine(llm, message: str, results: List[Dict[str, Any]]) -> str:
    spanish = is_spanish(message)
    if not results:
        if spanish:
            return "No pude procesar tu solicitud. ¿Podrías ser más específico?"
        return "I couldn't process your request. Could you be more specific?"

    if can_use_template(results):
        return format_result(results[0], spanish)

    try:
        return synthesize(llm, message, results)
    except Exception as exc:
        logger.warning(f"[combiner] synthesis failed, using templates: {exc}")
        return format_results(results, spanish)
