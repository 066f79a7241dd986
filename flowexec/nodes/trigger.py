import json
import logging
import time
from typing import Any, Dict

from ..steps.registry import call_step
from ..workflow.context import RunContext, step_context
from ..workflow.models import ExecutionResult
from .base import BaseNodeRunner

logger = logging.getLogger(__name__)

WEBHOOK = "Webhook"


class TriggerNodeRunner(BaseNodeRunner):
    """ Seeds the run with ``{triggered, timestamp}`` plus the trigger payload. """

    def trigger_data(self, trigger_input: Dict[str, Any]) -> Dict[str, Any]:
        data: Dict[str, Any] = {"triggered": True, "timestamp": int(time.time() * 1000)}
        config = self.node.data.config
        mock = config.get("webhookMockRequest")

        if self.node.trigger_type == WEBHOOK and mock and not trigger_input:
            try:
                parsed = json.loads(mock) if isinstance(mock, str) else mock
            except ValueError:
                logger.debug("Ignoring unparseable webhookMockRequest on %s", self.node_id)
                parsed = None
            if isinstance(parsed, dict):
                data.update(parsed)
        elif trigger_input:
            data.update(trigger_input)
        return data

    async def execute(self, ctx: RunContext) -> ExecutionResult:
        outcome = await call_step("Trigger", {
            "triggerData": self.trigger_data(ctx.trigger_input),
            "_context": step_context(ctx, self.node),
        })
        return ExecutionResult(success=bool(outcome.get("success")), data=outcome.get("data"))
