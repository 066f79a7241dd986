"""
Item model shared by data-aware steps.

An item is a dict of the form ``{"json": {...}}``. Step outputs of any shape
are normalised into a non-empty list of items so that downstream field
lookups degrade to ``None`` instead of failing on an empty sequence.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from .values import stringify

WorkflowItem = Dict[str, Any]

_INDEX_SEGMENT = re.compile(r"^(.*?)((?:\[\d+\])+)$")
_INDEX = re.compile(r"\[(\d+)\]")
_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")


def empty_item() -> WorkflowItem:
    return {"json": {}}


def is_item(value: Any) -> bool:
    return isinstance(value, dict) and "json" in value


def _wrap(value: Any) -> WorkflowItem:
    if is_item(value):
        return value
    if isinstance(value, dict):
        return {"json": value}
    return {"json": {"value": value}}


def normalize_to_items(data: Any) -> List[WorkflowItem]:
    """
    Normalise any step output into a non-empty list of items.

    For ``{"items": [...], ...}`` outputs, the sibling keys are run metadata
    (counts, rejected items) and are merged into ``_meta`` of the first item
    only.
    """
    if data is None:
        return [empty_item()]

    if isinstance(data, (list, tuple)):
        if not data:
            return [empty_item()]
        return [_wrap(element) for element in data]

    if isinstance(data, dict):
        if isinstance(data.get("items"), list):
            items = normalize_to_items(data["items"])
            meta = {k: v for k, v in data.items() if k != "items"}
            if meta:
                first = items[0]
                json_body = dict(first["json"])
                json_body["_meta"] = {**json_body.get("_meta", {}), **meta}
                items[0] = {**first, "json": json_body}
            return items
        # {success, data} envelopes are kept intact at this layer
        return [{"json": data}]

    return [{"json": {"value": data}}]


def _collect_legacy_value(value: Any) -> List[WorkflowItem]:
    items: List[WorkflowItem] = []
    if value is None:
        return items
    if isinstance(value, (list, tuple)):
        for element in value:
            if is_item(element):
                items.append(element)
            elif isinstance(element, dict):
                items.append({"json": element})
    elif isinstance(value, dict):
        inner = value.get("data")
        if "success" in value and "data" in value and isinstance(inner, dict):
            items.append({"json": inner})
        else:
            items.append({"json": value})
    return items


def _item_lists(node_items: Any) -> Iterable[List[WorkflowItem]]:
    if not isinstance(node_items, dict):
        return []
    return [items for items in node_items.values() if isinstance(items, list) and items]


def get_input_items(step_input: Dict[str, Any]) -> List[WorkflowItem]:
    """
    All upstream items, flattened.

    Prefers ``_nodeItems`` (already normalised by the executor) and falls back
    to reconstructing items from a legacy ``_nodeOutputs`` map.
    """
    collected: List[WorkflowItem] = []
    for items in _item_lists(step_input.get("_nodeItems")):
        collected.extend(items)
    if collected:
        return collected

    for value in (step_input.get("_nodeOutputs") or {}).values():
        collected.extend(_collect_legacy_value(value))
    return collected or [empty_item()]


def get_input_branches(step_input: Dict[str, Any]) -> List[List[WorkflowItem]]:
    """
    Upstream items grouped per source node, in upstream order.
    """
    branches = [list(items) for items in _item_lists(step_input.get("_nodeItems"))]
    if branches:
        return branches

    for value in (step_input.get("_nodeOutputs") or {}).values():
        items = _collect_legacy_value(value)
        if items:
            branches.append(items)
    return branches


def get_field_value(item: WorkflowItem, path: str, default: Any = None) -> Any:
    """
    Read a dotted path (``a.b.c``, ``rows[0].id``) from ``item["json"]``.

    Returns ``default`` as soon as a segment cannot be followed. A field that
    is present with a ``None`` value returns ``None``.
    """
    current: Any = item.get("json") if isinstance(item, dict) else None
    for part in str(path).split("."):
        match = _INDEX_SEGMENT.match(part)
        if match:
            name, indices = match.group(1), match.group(2)
            if name:
                if not isinstance(current, dict) or name not in current:
                    return default
                current = current[name]
            for index in _INDEX.findall(indices):
                if not isinstance(current, list):
                    return default
                position = int(index)
                if position >= len(current):
                    return default
                current = current[position]
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return current


def sanitize_field_name(raw: Any) -> Optional[str]:
    """
    Return ``raw`` when it can be used as a field name.

    Returns ``None`` when a template resolved the config field into the data
    itself (stringified JSON, a number, or a non-string value).
    """
    if not isinstance(raw, str):
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None
    if trimmed.startswith(("[", "{")):
        return None
    if _NUMERIC.match(trimmed):
        return None
    return trimmed


def infer_field_name(items: List[WorkflowItem], resolved_value: Any) -> Optional[str]:
    """
    Guess which field a template meant when it resolved to a value such as
    ``2014`` instead of the field name ``year``: the first non-private key of
    the first item whose value renders the same.
    """
    if not items or resolved_value is None:
        return None
    sample = items[0].get("json")
    if not isinstance(sample, dict):
        return None

    target = stringify(resolved_value)
    for key, value in sample.items():
        if key.startswith("_") or value is None:
            continue
        if stringify(value) == target:
            return key
    return None
