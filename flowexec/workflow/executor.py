"""
Graph executor.

Starting from trigger nodes without incoming edges, every reachable node runs
at most once. Each node fans out to its routed successors concurrently; a
failed node stops propagation along its own outgoing edges only.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from ..persistence.records import ExecutionRecord, ExecutionRecordStore
from ..steps.registry import resolve_action_type
from .context import RunContext
from .factory import make_runner
from .models import ExecutionResult, Workflow, WorkflowEdge, WorkflowNode, WorkflowRunResult

logger = logging.getLogger(__name__)

CONDITION = "Condition"
SWITCH = "Switch"
DEFAULT_HANDLE = "default"


def route_edges(node: WorkflowNode, result: ExecutionResult,
                edges: List[WorkflowEdge]) -> List[WorkflowEdge]:
    """ Outgoing edges of a successful node that should be followed. """
    data = result.data if isinstance(result.data, dict) else {}
    # catalog ids such as "system/condition" route like their step label
    step = resolve_action_type(node.action_type) if node.action_type else None

    if step == CONDITION:
        if not any(e.source_handle for e in edges):
            # unlabelled edges belong to the true branch
            return list(edges) if data.get("condition") is True else []
        handle = "true" if data.get("condition") is True else "false"
        return [e for e in edges if e.source_handle == handle]

    if step == SWITCH:
        matched = data.get("matchedOutput")
        chosen = [e for e in edges if matched is not None and e.source_handle == str(matched)]
        return chosen or [e for e in edges if e.source_handle == DEFAULT_HANDLE]

    return list(edges)


async def _execute_node(ctx: RunContext, node_id: str) -> None:
    if not ctx.claim(node_id):
        return
    node = ctx.nodes.get(node_id)
    if node is None:
        return

    outgoing = ctx.outgoing.get(node_id, [])
    if not node.is_enabled:
        ctx.record_output(node, None)
        await _fan_out(ctx, outgoing)
        return

    try:
        runner = make_runner(node)
        result = await runner.execute(ctx)
    except Exception as e:
        logger.error("[%s] node %s failed: %s", ctx.execution_id, node_id, e, exc_info=True)
        ctx.record_result(node, ExecutionResult(success=False, error=str(e) or type(e).__name__))
        return

    ctx.record_result(node, result)
    if not result.success:
        logger.error("[%s] node %s returned an error: %s", ctx.execution_id, node_id, result.error)
    if runner.records_output(result):
        ctx.record_output(node, result.data)
    if result.success:
        await _fan_out(ctx, route_edges(node, result, outgoing))


async def _fan_out(ctx: RunContext, edges: List[WorkflowEdge]) -> None:
    if edges:
        await asyncio.gather(*(_execute_node(ctx, e.target) for e in edges))


def summarize(ctx: RunContext, duration_ms: int) -> WorkflowRunResult:
    results = list(ctx.results.values())
    data = None
    for r in results:
        if r.success:
            data = r.data
    error = next((r.error for r in results if not r.success), None)
    return WorkflowRunResult(
        success=all(r.success for r in results),
        results=dict(ctx.results),
        outputs=dict(ctx.outputs),
        data=data,
        error=error,
        duration_ms=duration_ms,
    )


async def _write_record(store: ExecutionRecordStore, execution_id: str, run: WorkflowRunResult) -> None:
    record = ExecutionRecord(
        status="success" if run.success else "error",
        output=run.data,
        error=run.error,
        duration=str(run.duration_ms),
    )
    try:
        await store.complete_execution(execution_id, record)
    except Exception as e:
        logger.warning("[%s] could not write execution record: %s", execution_id, e)


async def run_workflow(workflow: Workflow, trigger_input: Optional[Dict[str, Any]] = None, *,
                       execution_id: str, workflow_id: Optional[str] = None,
                       record_store: Optional[ExecutionRecordStore] = None) -> WorkflowRunResult:
    ctx = RunContext(
        workflow=workflow,
        execution_id=execution_id,
        workflow_id=workflow_id or workflow.id or None,
        trigger_input=dict(trigger_input or {}),
    )
    triggers = ctx.initial_nodes()
    logger.info("[%s] starting workflow %s: %d nodes, %d edges, %d triggers",
                execution_id, ctx.workflow_id, len(workflow.nodes), len(workflow.edges), len(triggers))

    started = time.monotonic()
    await asyncio.gather(*(_execute_node(ctx, t.id) for t in triggers))
    run = summarize(ctx, int((time.monotonic() - started) * 1000))

    logger.info("[%s] workflow finished: success=%s, %d results in %dms",
                execution_id, run.success, len(run.results), run.duration_ms)

    if record_store is not None:
        await _write_record(record_store, execution_id, run)
    return run


def run_workflow_sync(workflow: Workflow, trigger_input: Optional[Dict[str, Any]] = None,
                      **kwargs) -> WorkflowRunResult:
    """ Blocking wrapper around :func:`run_workflow` for scripts and CLIs. """
    return asyncio.run(run_workflow(workflow, trigger_input, **kwargs))
