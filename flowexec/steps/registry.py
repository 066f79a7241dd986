"""
Step registry: maps an action label (``"HTTP Request"``, ``"Filter"``) to the
coroutine that executes it.

Step functions take one dict (the node's resolved config plus injected
``_context``/``_nodeItems``/``_nodeOutputs`` keys) and return a dict.
"""

import importlib
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

StepFunction = Callable[[Dict[str, Any]], Awaitable[Any]]

_STEPS: Dict[str, StepFunction] = {}

# Built-in step modules register themselves on import
_BUILTIN_MODULES = (
    "trigger",
    "condition",
    "switch",
    "filter",
    "sort",
    "limit",
    "aggregate",
    "remove_duplicates",
    "split_out",
    "merge",
    "set_fields",
    "code",
    "http_request",
    "database_query",
    "date_time",
    "wait",
)
_builtins_loaded = False


def register_step(label: str, *, data_aware: bool = False, max_retries: int = 0):
    """
    Register ``fn`` under ``label``.

    ``data_aware`` steps receive their upstream items as ``_nodeItems``.
    Steps are never retried by the executor; ``max_retries`` is recorded on
    the function for callers that layer their own policy on top.
    """
    def _wrap(fn):
        fn.label = label
        fn.data_aware = data_aware
        fn.max_retries = max_retries
        _STEPS[label] = fn
        return fn
    return _wrap


def load_builtin_steps() -> None:
    global _builtins_loaded
    if _builtins_loaded:
        return
    _builtins_loaded = True
    for module in _BUILTIN_MODULES:
        # imported lazily: step modules import this registry
        importlib.import_module(f"{__package__}.{module}")


def has_step(label: str) -> bool:
    load_builtin_steps()
    return label in _STEPS


def get_step(label: str) -> Optional[StepFunction]:
    load_builtin_steps()
    return _STEPS.get(label)


def step_labels() -> List[str]:
    load_builtin_steps()
    return list(_STEPS)


def is_data_aware(label: str) -> bool:
    step = get_step(label)
    return bool(step is not None and getattr(step, "data_aware", False))


def resolve_action_type(action_type: str) -> str:
    """
    Registry label for an action type.

    Accepts a registry label as-is, or a namespaced plugin id
    (``"system/http-request"``) translated through the plugin catalog.
    Unresolvable types are returned unchanged.
    """
    if has_step(action_type):
        return action_type

    from ..integrations.catalog import find_action_by_id

    action = find_action_by_id(action_type)
    if action is not None and has_step(action.label):
        return action.label
    return action_type


async def call_step(action_type: str, step_input: Dict[str, Any]) -> Any:
    """
    Look up and run the step for ``action_type``.

    An unknown action type is reported as a failed result rather than raised.
    """
    resolved = resolve_action_type(action_type)
    step = get_step(resolved)
    if step is None:
        logger.warning("Unknown action type %r (resolved %r)", action_type, resolved)
        return {
            "success": False,
            "error": {
                "message": (
                    f'Unknown action type: "{action_type}" (resolved: "{resolved}"). '
                    f"Available actions: {', '.join(step_labels())}"
                ),
            },
        }
    return await step(step_input)
