""" Trigger step: hands the synthesized trigger payload to the run. """

from typing import Any, Dict

from .handler import with_step_logging
from .registry import register_step


@register_step("Trigger")
async def trigger_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(
        step_input, lambda: {"success": True, "data": step_input.get("triggerData")}
    )
