""" Load and validate a Workflow from a JSON or YAML graph document. """

import logging
from typing import Any, Dict

import yaml

from .models import NodeData, Workflow, WorkflowEdge, WorkflowNode
from .schema import WorkflowSpec, WorkflowValidationError, validate_workflow

logger = logging.getLogger(__name__)


def load_workflow(text: str) -> Workflow:
    """
    Load a Workflow from a JSON or YAML string.

    JSON is a subset of YAML, so editor exports and hand-written YAML files
    go through the same parser.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowValidationError(f"Could not parse workflow document: {e}") from e
    return workflow_from_dict(data)


def workflow_from_dict(raw: Dict[str, Any]) -> Workflow:
    """
    Build a Workflow from an already-decoded graph document.
    """
    spec = validate_workflow(raw)
    workflow = _spec_to_workflow(spec)
    _check_references(workflow)
    return workflow


def _spec_to_workflow(spec: WorkflowSpec) -> Workflow:
    nodes = []
    for node_spec in spec.nodes:
        data = node_spec.data
        nodes.append(WorkflowNode(
            id=node_spec.id,
            type=node_spec.type,
            position=node_spec.position,
            data=NodeData(
                type=data.type,
                label=data.label,
                description=data.description,
                config=dict(data.config),
                enabled=data.enabled,
                status=data.status,
            ),
        ))

    edges = []
    for index, edge_spec in enumerate(spec.edges):
        edges.append(WorkflowEdge(
            id=edge_spec.id or f"e{index}-{edge_spec.source}-{edge_spec.target}",
            source=edge_spec.source,
            target=edge_spec.target,
            source_handle=edge_spec.source_handle,
            type=edge_spec.type,
        ))

    return Workflow(
        id=spec.id or "",
        name=spec.name or "",
        description=spec.description or "",
        nodes=nodes,
        edges=edges,
    )


def _check_references(workflow: Workflow) -> None:
    """
    Duplicate node ids are rejected. Dangling edges are only logged: the
    executor ignores them at run time.
    """
    node_ids = set()
    for node in workflow.nodes:
        if node.id in node_ids:
            raise WorkflowValidationError(f"Duplicate node id: {node.id}")
        node_ids.add(node.id)

    for edge in workflow.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            logger.warning("Edge %s references unknown node: %s -> %s",
                           edge.id, edge.source, edge.target)
