"""
Condition step.

``condition`` is either a boolean, a structured JSON condition from the visual
builder, or a legacy string that was already evaluated by template resolution.
"""

from typing import Any, Dict

from ..workflow.guards import evaluate_conditions, parse_structured_condition
from .handler import with_step_logging
from .registry import register_step


def evaluate_condition(value: Any) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        structured = parse_structured_condition(value, require_conditions=True)
        if structured is not None:
            return evaluate_conditions(structured)

        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0", ""):
            return False
        return True

    return bool(value)


@register_step("Condition")
async def condition_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(
        step_input, lambda: {"condition": evaluate_condition(step_input.get("condition"))}
    )
