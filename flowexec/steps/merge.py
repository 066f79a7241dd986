"""
Merge step: combines the items of several upstream branches.

Modes:
    append      all branches, one after the other
    byPosition  item ``i`` of every branch merged into one item
    byField     join the first two branches on one or more comma-separated
                fields, keeping matches and/or non-matches per ``joinMode``
"""

from typing import Any, Dict, List, Set

from ..workflow.items import WorkflowItem, get_field_value, get_input_branches
from ..workflow.values import stringify
from .handler import with_step_logging
from .registry import register_step

JOIN_MODES = ("keepMatches", "keepEverything", "keepNonMatches", "enrichInput1", "enrichInput2")


def _join_key(item: WorkflowItem, fields: List[str]) -> str:
    return "||".join(stringify(get_field_value(item, f)) for f in fields)


def merge_pair(first: WorkflowItem, second: WorkflowItem, clash: str) -> WorkflowItem:
    if clash == "addSuffix":
        merged = {f"{k}_1": v for k, v in first["json"].items()}
        merged.update({f"{k}_2": v for k, v in second["json"].items()})
        return {"json": merged}
    if clash == "preferInput1":
        return {"json": {**second["json"], **first["json"]}}
    return {"json": {**first["json"], **second["json"]}}


def _merge_by_position(branches: List[List[WorkflowItem]], clash: str) -> List[WorkflowItem]:
    longest = max(len(branch) for branch in branches)
    merged_items = []
    for position in range(longest):
        merged: WorkflowItem = {"json": {}}
        for branch in branches:
            if position < len(branch):
                merged = merge_pair(merged, branch[position], clash)
        merged_items.append(merged)
    return merged_items


def _merge_by_field(step_input: Dict[str, Any], first: List[WorkflowItem],
                    second: List[WorkflowItem], fields: List[str], clash: str) -> List[WorkflowItem]:
    lookup: Dict[str, List[WorkflowItem]] = {}
    for item in second:
        lookup.setdefault(_join_key(item, fields), []).append(item)

    only_first = step_input.get("multipleMatches") == "first"
    matched: List[WorkflowItem] = []
    unmatched_first: List[WorkflowItem] = []
    matched_keys: Set[str] = set()
    for item in first:
        key = _join_key(item, fields)
        candidates = lookup.get(key)
        if not candidates:
            unmatched_first.append(item)
            continue
        for candidate in candidates[:1] if only_first else candidates:
            matched.append(merge_pair(item, candidate, clash))
        matched_keys.add(key)

    unmatched_second = [item for item in second if _join_key(item, fields) not in matched_keys]

    join_mode = step_input.get("joinMode") or "keepMatches"
    if join_mode == "keepEverything":
        return matched + unmatched_first + unmatched_second
    if join_mode == "keepNonMatches":
        return unmatched_first + unmatched_second
    if join_mode == "enrichInput1":
        return matched + unmatched_first
    if join_mode == "enrichInput2":
        return matched + unmatched_second
    return matched


def merge_branches(step_input: Dict[str, Any]) -> Dict[str, Any]:
    branches = get_input_branches(step_input)
    if not branches:
        return {"items": [], "count": 0}

    mode = step_input.get("mode") or "append"
    clash = step_input.get("clashHandling") or "preferInput2"
    flat = [item for branch in branches for item in branch]

    if mode == "byPosition":
        items = _merge_by_position(branches, clash)
    elif mode == "byField":
        fields = [f.strip() for f in str(step_input.get("joinField") or "").split(",") if f.strip()]
        if not fields or len(branches) < 2:
            items = flat
        else:
            items = _merge_by_field(step_input, branches[0], branches[1], fields, clash)
    else:
        items = flat
    return {"items": items, "count": len(items)}


@register_step("Merge", data_aware=True)
async def merge_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: merge_branches(step_input))
