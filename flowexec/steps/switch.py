"""
Switch step: picks one named output.

``mode: "rules"``  ``rules`` is a JSON list of
                   ``{"output": "high", "match": "and", "conditions": [...]}``;
                   the first rule whose conditions hold wins.
``mode: "value"``  ``value`` is compared (as a string) with each entry of the
                   JSON list ``cases`` (``{"value": "CA", "output": "west"}``);
                   ``output`` defaults to the case value.

Nothing matching selects the ``"default"`` output.
"""

import json
from typing import Any, Dict, List

from ..workflow.guards import evaluate_conditions
from ..workflow.values import stringify
from .handler import with_step_logging
from .registry import register_step

DEFAULT_OUTPUT = "default"


def _json_list(raw: Any) -> List[Any]:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return []
    return parsed if isinstance(parsed, list) else []


def _match_rules(rules: List[Any]) -> str:
    for rule in rules:
        if not isinstance(rule, dict) or not rule.get("output"):
            continue
        if evaluate_conditions(rule):
            return stringify(rule["output"])
    return DEFAULT_OUTPUT


def _match_value(value: str, cases: List[Any]) -> str:
    for case in cases:
        if not isinstance(case, dict):
            case = {"value": case}
        if stringify(case.get("value")) == value:
            return stringify(case.get("output") or case.get("value"))
    return DEFAULT_OUTPUT


def evaluate_switch(step_input: Dict[str, Any]) -> Dict[str, Any]:
    value = step_input.get("value")
    if step_input.get("mode") == "rules":
        matched = _match_rules(_json_list(step_input.get("rules")))
    else:
        matched = _match_value(stringify(value), _json_list(step_input.get("cases")))
    return {"matchedOutput": matched, "value": value}


@register_step("Switch")
async def switch_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: evaluate_switch(step_input))
