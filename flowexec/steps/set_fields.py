"""
Set Fields step.

``fields`` is a JSON list of rows::

    {"name": "total", "type": "number", "value": "{{$item.amount}}"}
    {"name": "tier", "type": "string", "conditional": true,
     "branches": [{"condition": "<structured condition JSON>", "value": "gold"}],
     "elseValue": "standard"}

``{{$item.path}}`` references are read from the item being processed. Each
input item produces one output item.
"""

import json
import re
from typing import Any, Dict, List

from ..workflow.guards import evaluate_conditions, map_condition_values
from ..workflow.items import WorkflowItem, get_input_items
from ..workflow.values import is_finite, iso_format, parse_date, parse_float, stringify
from .handler import is_disabled_flag, with_step_logging
from .registry import register_step

ITEM_REFERENCE = re.compile(r"\{\{\$item\.([^}]+)\}\}")


def resolve_item_references(template: Any, item: WorkflowItem) -> Any:
    if not isinstance(template, str):
        return template

    def _substitute(match) -> str:
        current: Any = item.get("json")
        for part in match.group(1).split("."):
            if not isinstance(current, dict):
                return ""
            current = current.get(part)
        return stringify(current)

    return ITEM_REFERENCE.sub(_substitute, template)


def coerce_field_value(raw: Any, field_type: str) -> Any:
    text = stringify(raw)
    if field_type == "number":
        number = parse_float(text)
        if not is_finite(number):
            return 0
        return int(number) if number.is_integer() else number
    if field_type == "boolean":
        return text.strip().lower() in ("true", "1", "yes")
    if field_type == "date":
        moment = parse_date(text)
        return None if moment is None else iso_format(moment)
    if field_type == "json":
        try:
            return json.loads(text)
        except ValueError:
            return None
    if field_type == "array":
        try:
            parsed = json.loads(text)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else [parsed]
    if field_type == "string":
        return text
    return raw


def _row_condition_holds(condition_json: Any, item: WorkflowItem) -> bool:
    """ Malformed or empty conditions hold. """
    try:
        parsed = json.loads(condition_json) if isinstance(condition_json, str) else condition_json
    except ValueError:
        return True
    if not isinstance(parsed, dict) or not parsed.get("conditions"):
        return True
    resolved = map_condition_values(parsed, lambda raw: resolve_item_references(raw, item))
    return evaluate_conditions(resolved)


def _branches(row: Dict[str, Any]) -> List[Dict[str, Any]]:
    branches = row.get("branches")
    if branches:
        return branches
    # older rows carried a single condition next to the value
    if row.get("condition"):
        return [{"condition": row["condition"], "value": row.get("value")}]
    return []


def _raw_value(row: Dict[str, Any], item: WorkflowItem) -> Any:
    if row.get("conditional"):
        branches = _branches(row)
        if branches:
            for branch in branches:
                if _row_condition_holds(branch.get("condition"), item):
                    return resolve_item_references(branch.get("value") or "", item)
            return resolve_item_references(row.get("elseValue") or "", item)
    return resolve_item_references(row.get("value") or "", item)


def _parse_rows(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, list):
        return value
    try:
        rows = json.loads(value or "[]")
    except ValueError:
        return []
    return rows if isinstance(rows, list) else []


def set_fields(step_input: Dict[str, Any]) -> Dict[str, Any]:
    rows = [row for row in _parse_rows(step_input.get("fields")) if isinstance(row, dict)]
    include_input = not is_disabled_flag(step_input.get("includeInputFields"))

    output: List[WorkflowItem] = []
    for item in get_input_items(step_input):
        body: Dict[str, Any] = dict(item["json"]) if include_input else {}
        for row in rows:
            name = str(row.get("name") or "").strip()
            if not name:
                continue
            body[name] = coerce_field_value(_raw_value(row, item), row.get("type") or "string")
        output.append({"json": body})
    return {"items": output}


@register_step("Set Fields", data_aware=True)
async def set_fields_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: set_fields(step_input))
