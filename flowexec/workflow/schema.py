from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class WorkflowValidationError(ValueError):
    """Raised when a workflow document does not match the graph schema."""


class NodeDataSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    label: Optional[str] = None
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    enabled: Optional[bool] = None
    status: Optional[str] = None


class NodeSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: Optional[str] = None
    data: NodeDataSpec
    position: Optional[Dict[str, float]] = None


class EdgeSpec(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    type: Optional[str] = None


class WorkflowSpec(BaseModel):
    # Editor documents carry viewport/metadata keys we don't care about
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    nodes: List[NodeSpec] = Field(default_factory=list)
    edges: List[EdgeSpec] = Field(default_factory=list)


def validate_workflow(raw: Dict[str, Any]) -> WorkflowSpec:
    """Validate a raw graph document against WorkflowSpec."""
    if not isinstance(raw, dict):
        raise WorkflowValidationError("Workflow document must be a mapping")
    try:
        return WorkflowSpec.model_validate(raw)
    except ValidationError as e:
        raise WorkflowValidationError(f"Workflow validation error: {e}") from e
