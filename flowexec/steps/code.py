"""
Code step: runs user-authored Python against the upstream items.

The code is checked for imports and private attribute access, then runs with
a restricted set of builtins in a child process that is killed when
``Config.code_timeout_seconds`` expires. It must assign its output to
``result``; the result is returned as plain JSON data. Available names:

    items        all upstream items (``[{"json": {...}}, ...]``)
    item         the current item (first item in ``runOnceAllItems`` mode)
    data         ``item["json"]``
    item_index   index of ``item``
    nodes        ``nodes["Label"].json`` / ``.items`` / ``.first()`` ...
    execution    ``{"id": <execution id>, "mode": "manual"}``
    json         ``json.loads`` and ``json.dumps``
    math         the public functions and constants of ``math``
    print        captured into the step's ``logs``
"""

import ast
import asyncio
import json
import math
import multiprocessing
import time
from queue import Empty
from types import SimpleNamespace
from typing import Any, Dict, List

from ..config import config
from ..workflow.items import WorkflowItem, empty_item, get_input_items, is_item
from .handler import step_context, with_step_logging
from .registry import register_step

SAFE_BUILTINS = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "format": format,
    "frozenset": frozenset,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "pow": pow,
    "range": range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "None": None,
    "True": True,
    "False": False,
    "Exception": Exception,
    "ValueError": ValueError,
    "KeyError": KeyError,
}

FORBIDDEN_KEYWORDS = [
    "import os",
    "import sys",
    "import subprocess",
    "import socket",
    "__import__",
    "from os",
    "from sys",
    "from subprocess",
    "__subclasses__",
    "__globals__",
]

# frame and code objects lead back to real globals
FORBIDDEN_ATTRIBUTES = {
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "tb_frame", "tb_next",
    "co_code", "func_globals",
}

_POLL_SECONDS = 0.05


class CodeExecutionError(RuntimeError):
    pass


def to_items(data: Any) -> List[WorkflowItem]:
    """ Items view of a prior node's raw output, unwrapping ``{success, data}``. """
    if data is None:
        return []
    if isinstance(data, list):
        if all(is_item(d) for d in data):
            return list(data)
        return [d if is_item(d) else {"json": d if isinstance(d, dict) else {"value": d}} for d in data]
    if isinstance(data, dict):
        if is_item(data):
            return [data]
        if "success" in data and "data" in data:
            inner = data["data"]
            if isinstance(inner, list):
                return to_items(inner)
            if isinstance(inner, dict):
                return [{"json": inner}]
        return [{"json": data}]
    return [{"json": {"value": data}}]


class NodeView:
    """ Read-only view of one prior node's output. """

    def __init__(self, items: List[WorkflowItem]):
        self.items = items
        self.json = items[0]["json"] if items else {}

    def first(self) -> WorkflowItem:
        return self.items[0] if self.items else empty_item()

    def last(self) -> WorkflowItem:
        return self.items[-1] if self.items else empty_item()

    def all(self) -> List[WorkflowItem]:
        return self.items


class NodeViews(dict):
    """ Unknown labels give an empty view rather than a KeyError. """

    def __missing__(self, key):
        return NodeView([])


def build_node_views(step_input: Dict[str, Any]) -> NodeViews:
    views = NodeViews()
    for key, items in (step_input.get("_nodeItems") or {}).items():
        if isinstance(items, list):
            views[key] = NodeView([i for i in items if is_item(i)])
    for label, data in (step_input.get("_nodeOutputs") or {}).items():
        if label not in views:
            views[label] = NodeView(to_items(data))
    return views


def normalize_result(raw: Any) -> List[WorkflowItem]:
    if raw is None:
        return [empty_item()]
    if isinstance(raw, (list, tuple)):
        return [r if is_item(r) else {"json": r if isinstance(r, dict) else {"value": r}} for r in raw]
    if isinstance(raw, dict):
        return [raw] if is_item(raw) else [{"json": raw}]
    return [{"json": {"value": raw}}]


def check_code(code: str) -> None:
    """
    Reject code that imports modules or reaches for private or frame
    attributes before it is run.
    """
    lowered = code.lower()
    for forbidden in FORBIDDEN_KEYWORDS:
        if forbidden in lowered:
            raise CodeExecutionError(f"Code contains a forbidden operation: {forbidden}")

    try:
        tree = ast.parse(code)
    except SyntaxError as e:
        raise CodeExecutionError(f"Code has a syntax error: {e}") from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise CodeExecutionError("Code contains a forbidden operation: import")
        if isinstance(node, ast.Attribute) and (node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES):
            raise CodeExecutionError(f"Code contains a forbidden attribute: {node.attr}")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise CodeExecutionError(f"Code contains a forbidden name: {node.id}")


def _sandbox_modules() -> Dict[str, SimpleNamespace]:
    return {
        "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
        "math": SimpleNamespace(**{name: getattr(math, name) for name in dir(math) if not name.startswith("_")}),
    }


def _run_code(payload: Dict[str, Any]) -> Dict[str, Any]:
    logs: List[str] = []

    def _print(*args, **kwargs):
        logs.append(" ".join(str(a) for a in args))

    items = payload["items"]
    base = {
        "items": items,
        "nodes": build_node_views(payload),
        "execution": payload["execution"],
        "print": _print,
        **_sandbox_modules(),
    }

    def run(item: WorkflowItem, index: int) -> List[WorkflowItem]:
        scope = {"__builtins__": SAFE_BUILTINS, **base, "item": item, "data": item["json"], "item_index": index}
        exec(payload["code"], scope)
        return normalize_result(scope.get("result"))

    if payload["mode"] == "runOnceEachItem":
        results: List[WorkflowItem] = []
        for index, item in enumerate(items):
            results.extend(run(item, index))
    else:
        results = run(items[0], 0)
    # only plain JSON data crosses back to the workflow
    return {"items": json.loads(json.dumps(results, default=str)), "logs": logs}


def _child_main(payload: Dict[str, Any], results) -> None:
    try:
        outcome = _run_code(payload)
    except Exception as e:
        outcome = {"error": f"Code raised {type(e).__name__}: {e}"}
    results.put(outcome)


def run_in_process(payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    """
    Run the code in a child process and wait for its outcome. The child is
    killed when ``timeout`` expires.
    """
    ctx = multiprocessing.get_context("spawn")
    results = ctx.Queue()
    process = ctx.Process(target=_child_main, args=(payload, results), daemon=True)
    process.start()
    deadline = time.monotonic() + timeout
    try:
        while True:
            try:
                return results.get(timeout=_POLL_SECONDS)
            except Empty:
                pass
            if not process.is_alive():
                try:
                    return results.get(timeout=_POLL_SECONDS)
                except Empty:
                    raise CodeExecutionError(f"Code process exited with code {process.exitcode}") from None
            if time.monotonic() >= deadline:
                raise CodeExecutionError(f"Code execution timed out after {timeout:g}s")
    finally:
        if process.is_alive():
            process.kill()
        process.join()
        results.close()


async def execute_code(step_input: Dict[str, Any]) -> Dict[str, Any]:
    code = step_input.get("code") or "result = []"
    check_code(code)

    payload = {
        "code": code,
        "mode": step_input.get("mode") or "runOnceAllItems",
        "items": get_input_items(step_input),
        "execution": {"id": step_context(step_input).get("executionId") or "", "mode": "manual"},
        "_nodeItems": step_input.get("_nodeItems") or {},
        "_nodeOutputs": step_input.get("_nodeOutputs") or {},
    }
    # process start and wait are blocking; keep the event loop free for sibling branches
    outcome = await asyncio.to_thread(run_in_process, payload, config.code_timeout_seconds)
    if "error" in outcome:
        raise CodeExecutionError(outcome["error"])
    return outcome


@register_step("Code")
async def code_step(step_input: Dict[str, Any]) -> Dict[str, Any]:
    return await with_step_logging(step_input, lambda: execute_code(step_input))
