"""
Plugin catalog.

Plugins expose actions under namespaced ids (``"system/http-request"``,
``"crm/get-contact"``). The executor stores the id on the node; the catalog
translates it to the step registry label that actually runs it.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginAction:
    id: str           # namespaced, e.g. "system/http-request"
    label: str        # step registry label, e.g. "HTTP Request"
    description: str = ""


_PLUGINS: Dict[str, List[PluginAction]] = {}


def _action_id(namespace: str, slug: str) -> str:
    return slug if "/" in slug else f"{namespace}/{slug}"


def register_plugin(namespace: str, actions: Iterable[PluginAction]) -> None:
    """
    Register (or replace) a plugin's actions. Action ids without a ``/`` are
    prefixed with ``namespace``.
    """
    registered = [
        PluginAction(id=_action_id(namespace, a.id), label=a.label, description=a.description)
        for a in actions
    ]
    if namespace in _PLUGINS:
        logger.debug("Replacing plugin %r", namespace)
    _PLUGINS[namespace] = registered


def unregister_plugin(namespace: str) -> None:
    _PLUGINS.pop(namespace, None)


def find_action_by_id(action_id: str) -> Optional[PluginAction]:
    for actions in _PLUGINS.values():
        for action in actions:
            if action.id == action_id:
                return action
    return None


def list_actions() -> List[PluginAction]:
    return [a for actions in _PLUGINS.values() for a in actions]


register_plugin("system", [
    PluginAction("trigger", "Trigger", "Start of a workflow run"),
    PluginAction("condition", "Condition", "Route on a true/false condition"),
    PluginAction("switch", "Switch", "Route to one of several named outputs"),
    PluginAction("filter", "Filter", "Keep items matching a condition"),
    PluginAction("sort", "Sort", "Order items by a field"),
    PluginAction("limit", "Limit", "Keep the first or last N items"),
    PluginAction("aggregate", "Aggregate", "Count, sum, average, min, max or group items"),
    PluginAction("remove-duplicates", "Remove Duplicates", "Drop items with a repeated field value"),
    PluginAction("split-out", "Split Out", "One item per array element"),
    PluginAction("merge", "Merge", "Combine items from several branches"),
    PluginAction("set-fields", "Set Fields", "Add or overwrite item fields"),
    PluginAction("code", "Code", "Run Python over the items"),
    PluginAction("http-request", "HTTP Request", "Call an HTTP endpoint"),
    PluginAction("database-query", "Database Query", "Run SQL against the configured database"),
    PluginAction("date-time", "DateTime", "Parse, format, shift or compare dates"),
    PluginAction("wait", "Wait", "Pause the branch"),
])
