""" Data models for workflow graphs and execution results """

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TRIGGER = "trigger"
ACTION = "action"


@dataclass
class NodeData:
    type: str
    label: Optional[str] = None
    description: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: Optional[bool] = None
    status: Optional[str] = None


@dataclass
class WorkflowNode:
    id: str
    data: NodeData
    type: Optional[str] = None  # editor renderer type, not used for dispatch
    position: Optional[Dict[str, float]] = None

    @property
    def is_trigger(self) -> bool:
        return self.data.type == TRIGGER

    @property
    def is_enabled(self) -> bool:
        return self.data.enabled is not False

    @property
    def action_type(self) -> Optional[str]:
        return self.data.config.get("actionType") or None

    @property
    def trigger_type(self) -> Optional[str]:
        return self.data.config.get("triggerType") or None

    @property
    def display_name(self) -> str:
        """ Label, else the configured action/trigger type, else the node type. """
        if self.data.label:
            return self.data.label
        if self.data.type == ACTION:
            return self.action_type or "Action"
        if self.data.type == TRIGGER:
            return self.trigger_type or "Trigger"
        return self.data.type

    @property
    def step_type(self) -> str:
        """ Value reported as ``nodeType`` in the step context. """
        if self.is_trigger:
            return self.trigger_type or "Trigger"
        return self.action_type or "Action"


@dataclass
class WorkflowEdge:
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    type: Optional[str] = None


@dataclass
class Workflow:
    id: str = ""
    name: str = ""
    description: str = ""
    nodes: List[WorkflowNode] = field(default_factory=list)
    edges: List[WorkflowEdge] = field(default_factory=list)


@dataclass
class ExecutionResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class NodeOutput:
    label: str
    data: Any = None


@dataclass
class WorkflowRunResult:
    """
    Aggregated result of one run.

    ``results`` (keyed by node id) is the primary contract. ``data`` and
    ``error`` are convenience fields: the last successful node's data and the
    first failing node's error, in completion order.
    """
    success: bool
    results: Dict[str, ExecutionResult] = field(default_factory=dict)
    outputs: Dict[str, NodeOutput] = field(default_factory=dict)
    data: Any = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": {k: r.to_dict() for k, r in self.results.items()},
            "outputs": {k: {"label": o.label, "data": o.data} for k, o in self.outputs.items()},
            "data": self.data,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }
