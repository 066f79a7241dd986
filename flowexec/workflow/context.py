""" Run-scoped state shared by the node runners of one workflow run. """

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .items import WorkflowItem, normalize_to_items
from .models import ExecutionResult, NodeOutput, Workflow, WorkflowEdge, WorkflowNode
from .templates import sanitize_node_id


@dataclass
class RunContext:
    workflow: Workflow
    execution_id: str
    workflow_id: Optional[str] = None
    trigger_input: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, NodeOutput] = field(default_factory=dict)
    results: Dict[str, ExecutionResult] = field(default_factory=dict)
    visited: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.nodes: Dict[str, WorkflowNode] = {n.id: n for n in self.workflow.nodes}
        self.outgoing: Dict[str, List[WorkflowEdge]] = {}
        self.incoming: Dict[str, List[WorkflowEdge]] = {}
        for edge in self.workflow.edges:
            self.outgoing.setdefault(edge.source, []).append(edge)
            self.incoming.setdefault(edge.target, []).append(edge)
        self._by_output_key = {sanitize_node_id(n.id): n for n in self.workflow.nodes}

    def initial_nodes(self) -> List[WorkflowNode]:
        """ Trigger nodes without incoming edges, in document order. """
        return [n for n in self.workflow.nodes if n.is_trigger and n.id not in self.incoming]

    def claim(self, node_id: str) -> bool:
        """
        Mark ``node_id`` visited. False if it already was. Check and mark
        happen without yielding to the event loop.
        """
        if node_id in self.visited:
            return False
        self.visited.add(node_id)
        return True

    def record_output(self, node: WorkflowNode, data: Any) -> None:
        self.outputs[sanitize_node_id(node.id)] = NodeOutput(label=node.data.label or node.id, data=data)

    def record_result(self, node: WorkflowNode, result: ExecutionResult) -> None:
        self.results[node.id] = result

    def upstream_items(self, node: WorkflowNode) -> Dict[str, List[WorkflowItem]]:
        """
        Normalised outputs of the direct predecessors of ``node``, keyed by
        node id in edge order. Predecessors without output data are skipped.
        """
        items: Dict[str, List[WorkflowItem]] = {}
        for edge in self.incoming.get(node.id, []):
            if edge.source in items:
                continue
            output = self.outputs.get(sanitize_node_id(edge.source))
            if output is None or output.data is None:
                continue
            items[edge.source] = normalize_to_items(output.data)
        return items

    def output_aliases(self, label_for) -> Dict[str, Any]:
        """
        Every recorded output keyed by each label that may name its node: the
        stored label plus whatever ``label_for(node)`` yields (registry and
        catalog labels).
        """
        aliases: Dict[str, Any] = {}
        for key, output in self.outputs.items():
            aliases[output.label] = output.data
            node = self._by_output_key.get(key)
            if node is None:
                continue
            for label in label_for(node):
                if label and label not in aliases:
                    aliases[label] = output.data
        return aliases


def step_context(ctx: RunContext, node: WorkflowNode) -> Dict[str, Any]:
    """ The ``_context`` dict handed to every step. """
    return {
        "executionId": ctx.execution_id,
        "nodeId": node.id,
        "nodeName": node.display_name,
        "nodeType": node.step_type,
    }
