"""
Sort step.

Items whose sort field is missing always go last, whatever the direction. For
typed comparisons, values that do not parse as numbers or dates go last too.
Strings compare case-insensitively first, with lowercase ahead of uppercase
on ties. The sort is stable.
"""

import math
from functools import cmp_to_key
from typing import Any, Callable, Dict, List

from ..workflow.items import WorkflowItem, get_field_value, get_input_items
from ..workflow.values import is_number, locale_compare, parse_date, parse_float, stringify, to_epoch_ms
from .handler import with_step_logging
from .registry import register_step


def _compare_ordered(left: float, right: float) -> int:
    """ -1/0/1 with NaN sorting after everything and equal to itself. """
    left_nan, right_nan = math.isnan(left), math.isnan(right)
    if left_nan and right_nan:
        return 0
    if left_nan:
        return 1
    if right_nan:
        return -1
    return (left > right) - (left < right)


def _as_date_number(value: Any) -> float:
    moment = parse_date(value if is_number(value) else stringify(value))
    return math.nan if moment is None else float(to_epoch_ms(moment))


def _make_comparator(field: str, descending: bool, data_type: str) -> Callable[[WorkflowItem, WorkflowItem], int]:
    sign = -1 if descending else 1

    def typed(left: float, right: float) -> int:
        if math.isnan(left) or math.isnan(right):
            return _compare_ordered(left, right)
        return sign * _compare_ordered(left, right)

    def compare(a: WorkflowItem, b: WorkflowItem) -> int:
        left = get_field_value(a, field)
        right = get_field_value(b, field)
        if left is None and right is None:
            return 0
        if left is None:
            return 1
        if right is None:
            return -1

        if data_type == "number" or (data_type == "auto" and is_number(left)):
            return typed(parse_float(left), parse_float(right))
        if data_type == "date":
            return typed(_as_date_number(left), _as_date_number(right))

        return sign * locale_compare(stringify(left), stringify(right))

    return compare


def sort_items(step_input: Dict[str, Any]) -> Dict[str, Any]:
    items = get_input_items(step_input)
    field = step_input.get("sortField")
    if not field:
        return {"items": items, "count": len(items)}

    descending = step_input.get("direction") == "descending"
    data_type = step_input.get("dataType") or "auto"
    ordered: List[WorkflowItem] = sorted(items, key=cmp_to_key(_make_comparator(str(field), descending, data_type)))
    return {"items": ordered, "count": len(ordered)}


@register_step("Sort", data_aware=True)
async def sort_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: sort_items(step_input))
