""" Remove Duplicates step: one item per distinct ``dedupField`` value. """

from typing import Any, Dict, List, Set

from ..workflow.items import WorkflowItem, get_field_value, get_input_items
from ..workflow.values import stringify
from .handler import with_step_logging
from .registry import register_step


def _dedup_key(item: WorkflowItem, field: str) -> str:
    if not field:
        return ""
    return stringify(get_field_value(item, field))


def remove_duplicates(step_input: Dict[str, Any]) -> Dict[str, Any]:
    items = get_input_items(step_input)
    field = str(step_input.get("dedupField") or "")
    keep_last = step_input.get("keep") == "last"

    order = range(len(items) - 1, -1, -1) if keep_last else range(len(items))
    seen: Set[str] = set()
    kept_positions: List[int] = []
    for position in order:
        key = _dedup_key(items[position], field)
        if key in seen:
            continue
        seen.add(key)
        kept_positions.append(position)

    kept = [items[position] for position in sorted(kept_positions)]
    return {"items": kept, "count": len(kept), "removedCount": len(items) - len(kept)}


@register_step("Remove Duplicates", data_aware=True)
async def remove_duplicates_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: remove_duplicates(step_input))
