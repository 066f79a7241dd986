""" Wait step: pauses its branch for ``amount`` ``unit``s. """

import asyncio
import logging
from typing import Any, Dict

from ..config import config
from ..workflow.values import is_finite, parse_float
from .handler import with_step_logging
from .registry import register_step

logger = logging.getLogger(__name__)

UNIT_SECONDS = {"seconds": 1, "minutes": 60, "hours": 3_600}


def wait_seconds(step_input: Dict[str, Any]) -> float:
    amount = parse_float(step_input.get("amount"))
    if not is_finite(amount) or amount <= 0:
        return 0.0
    seconds = amount * UNIT_SECONDS.get(step_input.get("unit") or "seconds", 1)
    if seconds > config.wait_max_seconds:
        logger.warning("Wait of %gs capped at %gs", seconds, config.wait_max_seconds)
        return config.wait_max_seconds
    return seconds


async def pause(step_input: Dict[str, Any]) -> Dict[str, Any]:
    seconds = wait_seconds(step_input)
    await asyncio.sleep(seconds)
    return {"waited": seconds}


@register_step("Wait")
async def wait_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: pause(step_input))
