"""
Structured condition evaluation shared by the Condition, Filter, Switch and
Set Fields steps.

A structured condition is ``{"match": "and"|"or", "conditions": [row, ...]}``
where each row is ``{leftValue, operator, rightValue, dataType}``.
"""

import json
import math
from typing import Any, Callable, Dict, List, Optional

from .values import parse_date, parse_float, stringify

ConditionRow = Dict[str, Any]
StructuredCondition = Dict[str, Any]

TRUTHY_STRINGS = ("true", "1", "yes")


def _evaluate_string(op: str, left: str, right: str) -> bool:
    if op == "not_equals":
        return left != right
    if op == "contains":
        return right in left
    if op == "not_contains":
        return right not in left
    if op == "starts_with":
        return left.startswith(right)
    if op == "ends_with":
        return left.endswith(right)
    if op == "is_empty":
        return left.strip() == ""
    if op == "is_not_empty":
        return left.strip() != ""
    return left == right


def _evaluate_number(op: str, left: float, right: float) -> bool:
    if math.isnan(left):
        return False
    if op == "not_equals":
        return left != right
    if op == "greater_than":
        return left > right
    if op == "greater_than_or_equal":
        return left >= right
    if op == "less_than":
        return left < right
    if op == "less_than_or_equal":
        return left <= right
    return left == right


def _evaluate_date(op: str, left: Any, right: Any) -> bool:
    left_date = parse_date(stringify(left))
    right_date = parse_date(stringify(right))
    if left_date is None or right_date is None:
        return False
    if op == "is_after":
        return left_date > right_date
    if op == "is_before":
        return left_date < right_date
    return left_date == right_date


def evaluate_single(row: ConditionRow) -> bool:
    """
    Evaluate one row. Unknown operators fall back to the type's equality
    check; unknown data types compare the string forms.
    """
    left = row.get("leftValue")
    right = row.get("rightValue")
    op = row.get("operator") or "equals"
    data_type = row.get("dataType") or "string"

    if data_type == "string":
        return _evaluate_string(op, stringify(left), stringify(right))
    if data_type == "number":
        return _evaluate_number(op, parse_float(stringify(left)), parse_float(stringify(right)))
    if data_type == "boolean":
        truthy = stringify(left).lower() in TRUTHY_STRINGS
        return not truthy if op == "is_false" else truthy
    if data_type == "date":
        return _evaluate_date(op, left, right)
    return stringify(left) == stringify(right)


def evaluate_conditions(condition: StructuredCondition) -> bool:
    """
    AND/OR across all rows. No rows means the condition holds.
    """
    rows: List[ConditionRow] = condition.get("conditions") or []
    if not rows:
        return True
    results = [evaluate_single(row) for row in rows]
    if condition.get("match") == "or":
        return any(results)
    return all(results)


def parse_structured_condition(value: Any, *, require_conditions: bool = False) -> Optional[StructuredCondition]:
    """
    Decode a structured condition from a JSON string (or an already-decoded
    dict). Returns ``None`` when the value is not one.
    """
    parsed = value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
    if not isinstance(parsed, dict) or "match" not in parsed:
        return None
    if require_conditions and "conditions" not in parsed:
        return None
    return parsed


def map_condition_values(condition: StructuredCondition,
                         resolve: Callable[[Any], Any]) -> StructuredCondition:
    """
    Copy of ``condition`` with ``resolve`` applied to every left/right value.
    """
    return {
        "match": condition.get("match"),
        "conditions": [
            {**row, "leftValue": resolve(row.get("leftValue")), "rightValue": resolve(row.get("rightValue"))}
            for row in condition.get("conditions") or []
        ],
    }
