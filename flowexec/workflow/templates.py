"""
Cross-node template references.

Config strings may embed ``{{@nodeId:Label.path.to[0].field}}``. The node id
is sanitized and looked up in the run's node outputs; the optional path is
read from that node's data. Placeholders are scanned once, left to right, so
substituted values are never re-interpreted as templates.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .models import NodeOutput
from .values import stringify

OPEN = "{{@"
CLOSE = "}}"
ENVELOPE_KEYS = ("success", "data", "error")

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

PathStep = Union[str, int]


def sanitize_node_id(node_id: str) -> str:
    return _NON_ALNUM.sub("_", node_id)


@dataclass
class Placeholder:
    node_id: str
    label: str
    path: Optional[List[List[PathStep]]]  # None -> whole output


class _PathParser:
    """
    path    := segment ('.' segment)*
    segment := name index*
    index   := '[' digit+ ']'

    A segment that does not fit the grammar is used verbatim as a key.
    """

    def __init__(self, text: str):
        self.text = text

    def parse(self) -> List[List[PathStep]]:
        return [self._segment(raw) for raw in self.text.split(".")]

    def _segment(self, raw: str) -> List[PathStep]:
        bracket = raw.find("[")
        if bracket == -1:
            return [raw]
        steps: List[PathStep] = [raw[:bracket]] if bracket else []
        pos = bracket
        while pos < len(raw):
            if raw[pos] != "[":
                return [raw]
            close = raw.find("]", pos)
            digits = raw[pos + 1:close] if close != -1 else ""
            if not digits.isdigit():
                return [raw]
            steps.append(int(digits))
            pos = close + 1
        return steps


def parse_placeholder(text: str, start: int) -> Tuple[Optional[Placeholder], int]:
    """
    Parse the placeholder beginning at ``text[start]`` (which must be ``{{@``).

    Returns the placeholder and the index just past it, or ``(None, start)``
    when the text there is not a well-formed placeholder.
    """
    pos = start + len(OPEN)

    colon = text.find(":", pos)
    if colon == -1 or colon == pos or CLOSE in text[pos:colon]:
        return None, start
    node_id = text[pos:colon]

    brace = text.find("}", colon + 1)
    if brace == -1 or brace == colon + 1 or not text.startswith(CLOSE, brace):
        return None, start
    rest = text[colon + 1:brace]

    dot = rest.find(".")
    if dot == -1:
        return Placeholder(node_id=node_id, label=rest, path=None), brace + len(CLOSE)
    path = _PathParser(rest[dot + 1:]).parse()
    return Placeholder(node_id=node_id, label=rest[:dot], path=path), brace + len(CLOSE)


def _render(value: Any) -> str:
    if value is None:
        return ""
    return stringify(value)


def _walk(data: Any, path: List[List[PathStep]]) -> Any:
    current = data
    first = path[0][0] if path and path[0] else ""
    if (isinstance(current, dict) and "success" in current and "data" in current
            and first not in ENVELOPE_KEYS):
        current = current["data"]

    for segment in path:
        for step in segment:
            if isinstance(step, int):
                if isinstance(current, dict):
                    # object keys are strings: rows[0] on {"0": ...}
                    current = current.get(str(step))
                    continue
                if not isinstance(current, list) or step >= len(current):
                    return None
                current = current[step]
            elif isinstance(current, dict):
                current = current.get(step)
            elif isinstance(current, list) and step.isdigit():
                index = int(step)
                current = current[index] if index < len(current) else None
            else:
                return None
    return current


def resolve_placeholder(placeholder: Placeholder, outputs: Dict[str, NodeOutput]) -> Optional[str]:
    """ Rendered value, or ``None`` when the node has no recorded output. """
    output = outputs.get(sanitize_node_id(placeholder.node_id))
    if output is None:
        return None
    if output.data is None:
        return ""
    if placeholder.path is None:
        return _render(output.data)
    return _render(_walk(output.data, placeholder.path))


def render_template(text: str, outputs: Dict[str, NodeOutput]) -> str:
    parts: List[str] = []
    pos = 0
    while True:
        start = text.find(OPEN, pos)
        if start == -1:
            parts.append(text[pos:])
            break
        parts.append(text[pos:start])
        placeholder, end = parse_placeholder(text, start)
        if placeholder is None:
            parts.append(OPEN)
            pos = start + len(OPEN)
            continue
        resolved = resolve_placeholder(placeholder, outputs)
        # unknown nodes keep the literal placeholder
        parts.append(text[start:end] if resolved is None else resolved)
        pos = end
    return "".join(parts)


def process_templates(config: Dict[str, Any], outputs: Dict[str, NodeOutput]) -> Dict[str, Any]:
    """
    Resolve template references in every top-level string value of ``config``.
    """
    processed: Dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, str) and OPEN in value:
            processed[key] = render_template(value, outputs)
        else:
            processed[key] = value
    return processed
