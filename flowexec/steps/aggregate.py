"""
Aggregate step: ``count``, ``sum``, ``average``, ``min``, ``max`` or
``groupBy`` over the upstream items.
"""

from typing import Any, Dict, List

from ..workflow.items import get_field_value, get_input_items
from ..workflow.values import is_finite, parse_float, stringify
from .handler import with_step_logging
from .registry import register_step

NUMERIC_OPERATIONS = ("sum", "average", "min", "max")


def _error(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


def _numeric_sample(items, field: str) -> List[float]:
    sample = []
    for item in items:
        number = parse_float(stringify(get_field_value(item, field)))
        if is_finite(number):
            sample.append(number)
    return sample


def _tidy(number: float) -> Any:
    return int(number) if number.is_integer() else number


def aggregate_items(step_input: Dict[str, Any]) -> Dict[str, Any]:
    items = get_input_items(step_input)
    operation = step_input.get("operation") or "count"
    field = step_input.get("field") or ""

    if operation == "count":
        return {"result": len(items), "count": len(items), "operation": operation}

    if operation == "groupBy":
        group_field = step_input.get("groupByField") or field
        if not group_field:
            return _error("Group By requires a field")
        groups: Dict[str, int] = {}
        for item in items:
            key = stringify(get_field_value(item, group_field))
            groups[key] = groups.get(key, 0) + 1
        return {"groups": groups, "groupCount": len(groups), "count": len(items), "operation": operation}

    if operation not in NUMERIC_OPERATIONS:
        return _error(f"Unknown aggregate operation: {operation}")
    if not field:
        return _error(f"{operation} requires a field")

    sample = _numeric_sample(items, field)
    if not sample:
        return {"result": 0, "count": 0, "operation": operation}

    if operation == "sum":
        result = sum(sample)
    elif operation == "average":
        result = sum(sample) / len(sample)
    elif operation == "min":
        result = min(sample)
    else:
        result = max(sample)
    return {"result": _tidy(result), "count": len(sample), "operation": operation}


@register_step("Aggregate", data_aware=True)
async def aggregate_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: aggregate_items(step_input))
