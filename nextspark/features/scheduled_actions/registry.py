"""
nextspark/features/scheduled_actions/registry.py

In-process registry of scheduled action handlers.

A handler receives (payload, action) and may be sync or async. Each
definition carries its own timeout; the processor enforces it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from nextspark.core.config import settings


logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, Any], Any], Any]


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    handler: ActionHandler
    description: Optional[str]
    timeout_ms: int


_registry: Dict[str, ActionDefinition] = {}


def register_scheduled_action(
    name: str,
    handler: ActionHandler,
    description: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> ActionDefinition:
    if name in _registry:
        logger.warning("[scheduled-actions] overwriting handler for %s", name)
    definition = ActionDefinition(
        name=name,
        handler=handler,
        description=description,
        timeout_ms=timeout_ms or settings.SCHEDULED_ACTIONS_DEFAULT_TIMEOUT_MS,
    )
    _registry[name] = definition
    return definition


def get_action_handler(name: str) -> Optional[ActionDefinition]:
    return _registry.get(name)


def get_all_registered_actions() -> List[str]:
    return list(_registry)


def is_action_registered(name: str) -> bool:
    return name in _registry


def clear_action_registry() -> None:
    _registry.clear()
