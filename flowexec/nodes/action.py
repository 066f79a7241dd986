import logging
from typing import Any, Dict, List

from ..integrations.catalog import find_action_by_id
from ..steps.registry import call_step, is_data_aware, resolve_action_type
from ..workflow.context import RunContext, step_context
from ..workflow.models import ExecutionResult, WorkflowNode
from ..workflow.templates import process_templates
from .base import BaseNodeRunner

logger = logging.getLogger(__name__)

CODE_ACTION = "Code"


def _alias_labels(node: WorkflowNode) -> List[str]:
    """ Registry and catalog labels of ``node``'s action type. """
    action_type = node.action_type
    if not action_type:
        return []
    labels = [resolve_action_type(action_type)]
    action = find_action_by_id(action_type)
    if action is not None:
        labels.append(action.label)
    return labels


def to_execution_result(action_type: str, outcome: Any) -> ExecutionResult:
    """ ``{success: False, error}`` is a failure; anything else is data. """
    if isinstance(outcome, dict) and outcome.get("success") is False:
        error = outcome.get("error")
        if isinstance(error, dict):
            message = error.get("message") or f'Step "{action_type}" failed'
        elif error:
            message = str(error)
        else:
            message = f'Step "{action_type}" failed'
        return ExecutionResult(success=False, error=message)
    return ExecutionResult(success=True, data=outcome)


class ActionNodeRunner(BaseNodeRunner):
    """ Resolves templates and dispatches the node to its registered step. """

    def records_output(self, result: ExecutionResult) -> bool:
        # misconfigured nodes never ran
        return self.node.action_type is not None

    def build_input(self, ctx: RunContext) -> Dict[str, Any]:
        step_input = process_templates(dict(self.node.data.config), ctx.outputs)
        step_input["_context"] = step_context(ctx, self.node)

        label = resolve_action_type(self.node.action_type)
        if is_data_aware(label) or label == CODE_ACTION:
            step_input["_nodeItems"] = ctx.upstream_items(self.node)
        if label == CODE_ACTION:
            step_input["_nodeOutputs"] = ctx.output_aliases(_alias_labels)
        return step_input

    async def execute(self, ctx: RunContext) -> ExecutionResult:
        action_type = self.node.action_type
        if not action_type:
            return ExecutionResult(
                success=False,
                error=f'Action node "{self.node.display_name}" has no action type configured',
            )
        outcome = await call_step(action_type, self.build_input(ctx))
        return to_execution_result(action_type, outcome)
