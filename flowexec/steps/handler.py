"""
Shared plumbing for step functions.
"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Union

logger = logging.getLogger(__name__)

StepInput = Dict[str, Any]


def step_context(step_input: StepInput) -> Dict[str, Any]:
    context = step_input.get("_context")
    return context if isinstance(context, dict) else {}


async def with_step_logging(step_input: StepInput,
                            fn: Callable[[], Union[Any, Awaitable[Any]]]) -> Any:
    """
    Run ``fn`` (sync or async) and log its start, end and duration against
    the node in ``step_input["_context"]``. Exceptions are logged and
    re-raised for the executor to record.
    """
    context = step_context(step_input)
    node = context.get("nodeName") or context.get("nodeId") or "?"
    step_type = context.get("nodeType") or "step"
    execution_id = context.get("executionId")

    logger.debug("[%s] %s started (%s)", execution_id, node, step_type)
    started = time.monotonic()
    try:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        elapsed = int((time.monotonic() - started) * 1000)
        logger.debug("[%s] %s raised after %dms: %s", execution_id, node, elapsed, e)
        raise

    elapsed = int((time.monotonic() - started) * 1000)
    if isinstance(result, dict) and result.get("success") is False:
        logger.debug("[%s] %s reported failure after %dms", execution_id, node, elapsed)
    else:
        logger.debug("[%s] %s finished in %dms", execution_id, node, elapsed)
    return result


def is_disabled_flag(value: Any) -> bool:
    """ ``"false"`` (any case) or ``False``; editor toggles are stored as strings. """
    if isinstance(value, bool):
        return not value
    return isinstance(value, str) and value.strip().lower() == "false"
