""" Limit step: keeps the first or last ``maxItems`` items. """

from typing import Any, Dict

from ..workflow.items import get_input_items
from ..workflow.values import parse_int
from .handler import with_step_logging
from .registry import register_step


def limit_items(step_input: Dict[str, Any]) -> Dict[str, Any]:
    items = get_input_items(step_input)
    parsed = parse_int(step_input.get("maxItems"))
    max_items = 1 if parsed is None else max(0, parsed)

    if step_input.get("from") == "end":
        kept = items[len(items) - max_items:] if max_items else []
    else:
        kept = items[:max_items]
    return {"items": kept, "count": len(kept), "originalCount": len(items)}


@register_step("Limit", data_aware=True)
async def limit_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: limit_items(step_input))
