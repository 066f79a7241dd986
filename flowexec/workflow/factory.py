""" Factory for creating node runners based on node type. """
from typing import Dict, Type

from ..nodes.action import ActionNodeRunner
from ..nodes.base import BaseNodeRunner
from ..nodes.trigger import TriggerNodeRunner
from .models import ACTION, TRIGGER

_RUNNER_MAP: Dict[str, Type[BaseNodeRunner]] = {
    TRIGGER: TriggerNodeRunner,
    ACTION: ActionNodeRunner,
}


def make_runner(node) -> BaseNodeRunner:
    cls = _RUNNER_MAP.get(node.data.type)
    if not cls:
        raise ValueError(f"Unknown node type: {node.data.type}")
    return cls(node)
