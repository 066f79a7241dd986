"""
Filter step: keeps the items that satisfy a structured condition.

Condition operands are resolved against each item before evaluation: an
operand that looks like a field path (``status``, ``address.city``,
``rows[0].id``) and exists on the item is replaced by the item's value.
Number and boolean literals, leftover template syntax and anything else pass
through unchanged.
"""

import json
import re
from typing import Any, Dict, List

from ..workflow.guards import evaluate_conditions, map_condition_values, parse_structured_condition
from ..workflow.items import WorkflowItem, get_field_value, get_input_items
from .handler import with_step_logging
from .registry import register_step

_NUMBER_LITERAL = re.compile(r"^-?\d+(\.\d+)?$")
_FIELD_PATH = re.compile(r"^[\w.\[\]]+$")
_MISSING = object()


def resolve_operand(raw: Any, item: WorkflowItem) -> Any:
    if not isinstance(raw, str) or not raw.strip():
        return raw

    trimmed = raw.strip()
    if _NUMBER_LITERAL.match(trimmed):
        return trimmed
    if trimmed in ("true", "false"):
        return trimmed
    if "{{" in trimmed or "}}" in trimmed:
        return trimmed

    if _FIELD_PATH.match(trimmed):
        value = get_field_value(item, trimmed, _MISSING)
        if value is None:
            return ""
        if value is not _MISSING:
            if isinstance(value, (dict, list)):
                return json.dumps(value, separators=(",", ":"))
            return value
    return raw


def filter_items(step_input: Dict[str, Any]) -> Dict[str, Any]:
    items = get_input_items(step_input)
    structured = parse_structured_condition(step_input.get("condition") or "")
    if structured is None:
        return {"items": items, "rejectedItems": [], "keptCount": len(items), "removedCount": 0}

    kept: List[WorkflowItem] = []
    rejected: List[WorkflowItem] = []
    for item in items:
        resolved = map_condition_values(structured, lambda raw: resolve_operand(raw, item))
        if evaluate_conditions(resolved):
            kept.append(item)
        else:
            rejected.append(item)

    return {"items": kept, "rejectedItems": rejected, "keptCount": len(kept), "removedCount": len(rejected)}


@register_step("Filter", data_aware=True)
async def filter_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: filter_items(step_input))
