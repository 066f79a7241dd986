"""
Split Out step: one item per element of an array field.

Dict values are split through their values. When a template resolved
``fieldPath`` into the data itself (a JSON array or object rather than a field
name) and that value matches a field of the first item, the field is split as
if it had been named; otherwise the value is split directly.
"""

import json
from typing import Any, Dict, List, Optional

from ..workflow.items import WorkflowItem, get_field_value, get_input_items, infer_field_name, sanitize_field_name
from .handler import is_disabled_flag, with_step_logging
from .registry import register_step


def coerce_to_list(value: Any) -> Optional[List[Any]]:
    if value is None:
        return None
    if isinstance(value, list):
        # [{key: {...}, key2: {...}}] is a wrapped key -> object map
        if len(value) == 1 and isinstance(value[0], dict):
            inner = list(value[0].values())
            if len(inner) > 1 and all(isinstance(v, (dict, list)) for v in inner):
                return inner
        return value
    if isinstance(value, dict):
        return list(value.values())
    return [value]


def _element_item(element: Any) -> WorkflowItem:
    if isinstance(element, dict):
        return {"json": element}
    return {"json": {"value": element}}


def _split_direct(values: List[Any], include_others: bool, source: List[WorkflowItem]) -> List[WorkflowItem]:
    if include_others and source:
        return [{"json": dict(source[0]["json"])} for _ in values]
    return [_element_item(element) for element in values]


def split_out(step_input: Dict[str, Any]) -> Dict[str, Any]:
    raw_path = step_input.get("fieldPath")
    include_others = not is_disabled_flag(step_input.get("includeOtherFields"))
    source = get_input_items(step_input)

    field = sanitize_field_name(raw_path)
    if field is None and raw_path is not None and raw_path != "":
        # a value read from the items themselves names the field it came from
        field = infer_field_name(source, raw_path)
    if field is None:
        if raw_path is None or raw_path == "":
            return {"items": source, "count": len(source)}
        direct = raw_path
        if isinstance(raw_path, str):
            try:
                direct = json.loads(raw_path)
            except ValueError:
                direct = raw_path
        values = coerce_to_list(direct)
        if values:
            items = _split_direct(values, include_others, source)
            return {"items": items, "count": len(items)}
        return {"items": source, "count": len(source)}

    top_key = field.split(".")[0]
    result: List[WorkflowItem] = []
    for item in source:
        values = coerce_to_list(get_field_value(item, field))
        if values is None:
            result.append(item)
            continue
        for element in values:
            if include_others:
                base = dict(item["json"])
                base[top_key] = element
                result.append({"json": base})
            else:
                result.append(_element_item(element))
    return {"items": result, "count": len(result)}


@register_step("Split Out", data_aware=True)
async def split_out_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: split_out(step_input))
