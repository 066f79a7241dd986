"""
DateTime step: ``getCurrent``, ``format``, ``addSubtract``, ``compare`` or
``parse``. Dates are handled in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from ..workflow.values import iso_format, parse_date, parse_float, to_epoch_ms
from .handler import with_step_logging
from .registry import register_step

INVALID_DATE = "Invalid Date"

UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3_600,
    "days": 86_400,
    "weeks": 604_800,
    "months": 2_592_000,
    "years": 31_536_000,
}

_TOKENS = (("YYYY", "%Y"), ("MM", "%m"), ("DD", "%d"), ("HH", "%H"), ("mm", "%M"), ("ss", "%S"))


def format_date(moment: datetime, fmt: str) -> str:
    """
    ``ISO``, ``unix`` (seconds), ``ms``, or a pattern using the tokens
    YYYY MM DD HH mm ss (first occurrence of each is replaced).
    """
    if fmt in ("ISO", "iso"):
        return iso_format(moment)
    if fmt in ("unix", "Unix Timestamp"):
        return str(to_epoch_ms(moment) // 1000)
    if fmt in ("ms", "Unix MS"):
        return str(to_epoch_ms(moment))

    utc = moment.astimezone(timezone.utc)
    out = fmt
    for token, directive in _TOKENS:
        out = out.replace(token, utc.strftime(directive), 1)
    return out


def _invalid(original: Any) -> Dict[str, Any]:
    return {"result": INVALID_DATE, "original": original or ""}


def execute_date_time(step_input: Dict[str, Any]) -> Dict[str, Any]:
    operation = step_input.get("operation") or "getCurrent"
    fmt = step_input.get("outputFormat") or "ISO"
    raw = step_input.get("dateValue") or ""

    if operation == "getCurrent":
        now = datetime.now(timezone.utc)
        return {"result": format_date(now, fmt), "original": iso_format(now)}

    if operation not in ("format", "addSubtract", "compare", "parse"):
        return {"result": "Unknown operation", "original": ""}

    moment = parse_date(raw)
    if moment is None:
        return _invalid(raw)

    if operation == "format":
        return {"result": format_date(moment, fmt), "original": iso_format(moment)}

    if operation == "parse":
        return {"result": format_date(moment, fmt), "original": raw}

    if operation == "addSubtract":
        amount = parse_float(step_input.get("amount") or "0")
        unit_seconds = UNIT_SECONDS.get(step_input.get("unit") or "days", UNIT_SECONDS["days"])
        direction = -1 if step_input.get("direction") == "subtract" else 1
        try:
            shifted = moment + timedelta(seconds=direction * amount * unit_seconds)
        except (OverflowError, ValueError):
            return _invalid(raw)
        return {"result": format_date(shifted, fmt), "original": iso_format(moment)}

    other = parse_date(step_input.get("secondDate") or "")
    if other is None:
        return _invalid(raw)
    comparison = step_input.get("comparison") or "difference"
    if comparison == "before":
        result: Any = moment < other
    elif comparison == "after":
        result = moment > other
    elif comparison == "same":
        result = moment == other
    else:
        result = to_epoch_ms(moment) - to_epoch_ms(other)
    return {"result": result, "original": iso_format(moment)}


@register_step("DateTime")
async def date_time_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: execute_date_time(step_input))
