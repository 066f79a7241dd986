"""Tests for workflow graph execution."""

import json
import logging

import pytest
from flowexec.integrations.catalog import PluginAction, register_plugin, unregister_plugin
from flowexec.persistence.records import ExecutionRecordStore, InMemoryExecutionRecordStore
from flowexec.steps.registry import register_step
from flowexec.workflow.executor import run_workflow, run_workflow_sync
from flowexec.workflow.loader import workflow_from_dict

CALLS = []


# Register test steps
@register_step("test.echo")
async def step_echo(step_input):
    """Return the node's resolved config without injected keys."""
    CALLS.append(step_input["_context"]["nodeId"])
    return {k: v for k, v in step_input.items() if not k.startswith("_")}


@register_step("test.inspect")
async def step_inspect(step_input):
    """Return the injected keys so tests can look at them."""
    CALLS.append(step_input["_context"]["nodeId"])
    return {
        "context": step_input["_context"],
        "has_items": "_nodeItems" in step_input,
        "has_outputs": "_nodeOutputs" in step_input,
    }


@register_step("test.fail")
async def step_fail(step_input):
    CALLS.append(step_input["_context"]["nodeId"])
    return {"success": False, "error": {"message": "pricing grid unavailable"}}


@register_step("test.fail_plain")
async def step_fail_plain(step_input):
    return {"success": False, "error": "plain failure"}


@register_step("test.boom")
async def step_boom(step_input):
    CALLS.append(step_input["_context"]["nodeId"])
    raise RuntimeError("kaboom")


@pytest.fixture(autouse=True)
def clear_calls():
    CALLS.clear()


def trigger(node_id="t", **config):
    return {"id": node_id, "type": "trigger",
            "data": {"type": "trigger", "label": "Start", "config": {"triggerType": "Manual", **config}}}


def action(node_id, action_type, label=None, enabled=None, **config):
    data = {"type": "action", "config": {"actionType": action_type, **config}}
    if label:
        data["label"] = label
    if enabled is not None:
        data["enabled"] = enabled
    return {"id": node_id, "type": "action", "data": data}


def edge(source, target, handle=None):
    e = {"id": f"{source}->{target}", "source": source, "target": target}
    if handle:
        e["sourceHandle"] = handle
    return e


def workflow(nodes, edges):
    return workflow_from_dict({"id": "wf-test", "name": "test", "nodes": nodes, "edges": edges})


def condition_workflow(value, handles=("true", "false")):
    return workflow(
        [trigger(), action("cond", "Condition", condition=value), action("yes", "test.echo"), action("no", "test.echo")],
        [edge("t", "cond"), edge("cond", "yes", handles[0]), edge("cond", "no", handles[1])],
    )


@pytest.mark.asyncio
async def test_condition_true_runs_only_true_branch():
    run = await run_workflow(condition_workflow("true"), execution_id="exec-1")

    assert run.success is True
    assert "yes" in run.results
    assert "no" not in run.results
    assert run.results["cond"].data == {"condition": True}


@pytest.mark.asyncio
async def test_condition_false_runs_only_false_branch():
    run = await run_workflow(condition_workflow("0"), execution_id="exec-1")

    assert "no" in run.results
    assert "yes" not in run.results


@pytest.mark.asyncio
async def test_condition_with_unlabelled_edges():
    """Without any handles, edges belong to the true branch."""
    run_true = await run_workflow(condition_workflow("true", handles=(None, None)), execution_id="exec-1")
    run_false = await run_workflow(condition_workflow("false", handles=(None, None)), execution_id="exec-2")

    assert {"yes", "no"} <= set(run_true.results)
    assert "yes" not in run_false.results and "no" not in run_false.results


@pytest.mark.asyncio
async def test_condition_resolves_templates_from_trigger_input():
    condition = json.dumps({"match": "and", "conditions": [
        {"leftValue": "{{@t:Start.loanAmount}}", "operator": "greater_than", "rightValue": "766550", "dataType": "number"},
    ]})
    wf = condition_workflow(condition)

    big = await run_workflow(wf, {"loanAmount": 900000}, execution_id="exec-1")
    small = await run_workflow(wf, {"loanAmount": 300000}, execution_id="exec-2")

    assert "yes" in big.results and "no" not in big.results
    assert "no" in small.results and "yes" not in small.results


@pytest.mark.asyncio
async def test_switch_routes_to_matched_output_or_default():
    cases = json.dumps([{"value": "CA", "output": "west"}, {"value": "NY", "output": "east"}])
    wf = workflow(
        [trigger(), action("sw", "Switch", value="{{@t:Start.state}}", cases=cases),
         action("west", "test.echo"), action("east", "test.echo"), action("other", "test.echo")],
        [edge("t", "sw"), edge("sw", "west", "west"), edge("sw", "east", "east"), edge("sw", "other", "default")],
    )

    ca = await run_workflow(wf, {"state": "CA"}, execution_id="exec-1")
    tx = await run_workflow(wf, {"state": "TX"}, execution_id="exec-2")

    assert "west" in ca.results and "east" not in ca.results and "other" not in ca.results
    assert "other" in tx.results and "west" not in tx.results


@pytest.mark.asyncio
async def test_disabled_node_is_bypassed():
    """A disabled node records a None output and its downstream node still runs."""
    wf = workflow(
        [trigger(), action("off", "test.fail", enabled=False), action("after", "test.echo")],
        [edge("t", "off"), edge("off", "after")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert run.outputs["off"].data is None
    assert "off" not in run.results
    assert "after" in run.results
    assert "off" not in CALLS
    assert run.success is True


@pytest.mark.asyncio
async def test_templates_resolve_prior_outputs():
    wf = workflow(
        [trigger("trigger-1"), action("lookup", "test.echo", label="Get Row", rows=[{"id": 7}]),
         action("use", "test.echo", loan="{{@trigger-1:Start.loanId}}", row="{{@lookup:Get Row.rows[0].id}}",
                missing="{{@nowhere:Nope.x}}")],
        [edge("trigger-1", "lookup"), edge("lookup", "use")],
    )
    run = await run_workflow(wf, {"loanId": 42}, execution_id="exec-1")
    data = run.results["use"].data

    assert data["loan"] == "42"
    assert data["row"] == "7"
    assert data["missing"] == "{{@nowhere:Nope.x}}"
    assert "trigger_1" in run.outputs
    assert run.outputs["lookup"].label == "Get Row"


@pytest.mark.asyncio
async def test_trigger_data_merges_input():
    run = await run_workflow(workflow([trigger()], []), {"dealId": "d-1"}, execution_id="exec-1")
    data = run.results["t"].data

    assert data["triggered"] is True
    assert isinstance(data["timestamp"], int)
    assert data["dealId"] == "d-1"


@pytest.mark.asyncio
async def test_webhook_mock_request_used_without_input():
    mock = json.dumps({"email": "borrower@example.com"})
    wf = workflow([trigger(triggerType="Webhook", webhookMockRequest=mock)], [])

    without_input = await run_workflow(wf, execution_id="exec-1")
    with_input = await run_workflow(wf, {"email": "real@example.com"}, execution_id="exec-2")

    assert without_input.results["t"].data["email"] == "borrower@example.com"
    assert with_input.results["t"].data["email"] == "real@example.com"


@pytest.mark.asyncio
async def test_bad_webhook_mock_is_ignored():
    wf = workflow([trigger(triggerType="Webhook", webhookMockRequest="{not json")], [])
    run = await run_workflow(wf, execution_id="exec-1")

    assert run.success is True
    assert set(run.results["t"].data) == {"triggered", "timestamp"}


@pytest.mark.asyncio
async def test_missing_action_type_halts_branch():
    wf = workflow(
        [trigger(), {"id": "blank", "data": {"type": "action", "label": "Blank", "config": {}}},
         action("after", "test.echo")],
        [edge("t", "blank"), edge("blank", "after")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert run.results["blank"].success is False
    assert run.results["blank"].error == 'Action node "Blank" has no action type configured'
    assert "blank" not in run.outputs
    assert "after" not in run.results
    assert run.success is False


@pytest.mark.asyncio
async def test_step_failure_halts_only_its_branch():
    wf = workflow(
        [trigger(), action("bad", "test.fail"), action("after_bad", "test.echo"), action("good", "test.echo")],
        [edge("t", "bad"), edge("bad", "after_bad"), edge("t", "good")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert run.results["bad"].error == "pricing grid unavailable"
    assert "after_bad" not in run.results
    assert run.results["good"].success is True
    assert run.success is False
    assert run.error == "pricing grid unavailable"
    assert run.outputs["bad"].data is None


@pytest.mark.asyncio
async def test_string_errors_are_surfaced():
    run = await run_workflow(workflow([trigger(), action("a", "test.fail_plain")], [edge("t", "a")]),
                             execution_id="exec-1")
    assert run.results["a"].error == "plain failure"


@pytest.mark.asyncio
async def test_exceptions_are_caught_per_node(caplog):
    wf = workflow(
        [trigger(), action("boom", "test.boom"), action("after", "test.echo"), action("sibling", "test.echo")],
        [edge("t", "boom"), edge("boom", "after"), edge("t", "sibling")],
    )
    with caplog.at_level(logging.ERROR, logger="flowexec.workflow.executor"):
        run = await run_workflow(wf, execution_id="exec-1")

    assert run.results["boom"].success is False
    assert run.results["boom"].error == "kaboom"
    assert "after" not in run.results
    assert run.results["sibling"].success is True
    assert "kaboom" in caplog.text


@pytest.mark.asyncio
async def test_unknown_action_type_is_a_failure():
    run = await run_workflow(workflow([trigger(), action("x", "does.not.exist")], [edge("t", "x")]),
                             execution_id="exec-1")

    assert run.results["x"].success is False
    assert run.results["x"].error.startswith('Unknown action type: "does.not.exist"')


@pytest.mark.asyncio
async def test_each_node_runs_once_on_diamond_and_cycle():
    """Joins and cycles do not run a node twice; steps are never retried."""
    wf = workflow(
        [trigger(), action("a", "test.echo"), action("b", "test.echo"), action("c", "test.echo"),
         action("bad", "test.fail")],
        [edge("t", "a"), edge("t", "b"), edge("a", "c"), edge("b", "c"), edge("c", "a"), edge("c", "bad")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert sorted(CALLS) == ["a", "b", "bad", "c"]
    assert set(run.results) == {"t", "a", "b", "c", "bad"}


@pytest.mark.asyncio
async def test_only_triggers_without_incoming_edges_start():
    wf = workflow(
        [trigger("t1"), trigger("t2"), action("a", "test.echo")],
        [edge("t1", "a"), edge("a", "t2")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert set(run.results) == {"t1", "a", "t2"}


@pytest.mark.asyncio
async def test_dangling_edges_are_ignored():
    wf = workflow([trigger(), action("a", "test.echo")], [edge("t", "a"), edge("a", "ghost")])
    run = await run_workflow(wf, execution_id="exec-1")
    assert run.success is True


@pytest.mark.asyncio
async def test_step_context_and_injection():
    """Data-aware steps get _nodeItems; others get neither items nor outputs."""
    wf = workflow(
        [trigger(), action("plain", "test.inspect", label="Inspect")],
        [edge("t", "plain")],
    )
    run = await run_workflow(wf, execution_id="exec-ctx")
    data = run.results["plain"].data

    assert data["context"] == {"executionId": "exec-ctx", "nodeId": "plain", "nodeName": "Inspect",
                               "nodeType": "test.inspect"}
    assert data["has_items"] is False
    assert data["has_outputs"] is False


@pytest.mark.asyncio
async def test_data_aware_steps_receive_upstream_items():
    wf = workflow(
        [trigger(), action("limit", "Limit", maxItems="2"), action("sort", "system/sort", sortField="n",
                                                                   direction="descending")],
        [edge("t", "limit"), edge("limit", "sort")],
    )
    run = await run_workflow(wf, {"items": [{"n": 1}, {"n": 2}, {"n": 3}]}, execution_id="exec-1")

    limited = run.results["limit"].data
    assert limited["count"] == 2
    assert limited["originalCount"] == 3
    # trigger metadata rides on the first item
    assert limited["items"][0]["json"]["_meta"]["triggered"] is True

    ordered = run.results["sort"].data["items"]
    assert [item["json"]["n"] for item in ordered] == [2, 1]


@pytest.mark.asyncio
async def test_code_sees_prior_outputs_under_every_label():
    register_plugin("loans", [PluginAction("load", "test.echo", "Load a loan")])
    try:
        code = "\n".join([
            "result = {",
            "    'by_label': nodes['Load Loan'].json['amount'],",
            "    'by_step': nodes['test.echo'].json['amount'],",
            "    'trigger': nodes['Start'].json['dealId'],",
            "    'count': len(items),",
            "}",
        ])
        wf = workflow(
            [trigger(), action("load", "loans/load", label="Load Loan", amount=250000),
             action("code", "Code", code=code)],
            [edge("t", "load"), edge("load", "code")],
        )
        run = await run_workflow(wf, {"dealId": "d-9"}, execution_id="exec-1")
    finally:
        unregister_plugin("loans")

    assert run.results["code"].success is True, run.results["code"].error
    assert run.results["code"].data["items"] == [
        {"json": {"by_label": 250000, "by_step": 250000, "trigger": "d-9", "count": 1}},
    ]


@pytest.mark.asyncio
async def test_run_data_and_error_fields():
    wf = workflow(
        [trigger(), action("a", "test.echo", value=1), action("b", "test.fail")],
        [edge("t", "a"), edge("a", "b")],
    )
    run = await run_workflow(wf, execution_id="exec-1")
    out = run.to_dict()

    assert run.data == {"actionType": "test.echo", "value": 1}
    assert run.error == "pricing grid unavailable"
    assert out["success"] is False
    assert set(out["results"]) == {"t", "a", "b"}
    assert out["results"]["b"] == {"success": False, "error": "pricing grid unavailable"}
    assert out["outputs"]["a"] == {"label": "a", "data": {"actionType": "test.echo", "value": 1}}
    assert out["duration_ms"] >= 0


@pytest.mark.asyncio
async def test_envelope_results_are_data():
    """A step returning {success: True, data} succeeds with the whole envelope as data."""
    wf = workflow([trigger(), action("a", "test.echo", success=True, data={"x": 1})], [edge("t", "a")])
    run = await run_workflow(wf, execution_id="exec-1")

    assert run.results["a"].success is True
    assert run.results["a"].data["data"] == {"x": 1}


@pytest.mark.asyncio
async def test_execution_record_written_once():
    store = InMemoryExecutionRecordStore()
    wf = workflow([trigger(), action("a", "test.fail")], [edge("t", "a")])

    run = await run_workflow(wf, execution_id="exec-rec", workflow_id="wf-1", record_store=store)

    assert len(store.writes) == 1
    record = store.get("exec-rec")
    assert record.status == "error"
    assert record.error == "pricing grid unavailable"
    assert record.duration == str(run.duration_ms)
    assert record.completed_at is not None


class BrokenStore(ExecutionRecordStore):
    async def complete_execution(self, execution_id, record):
        raise ConnectionError("database is down")


@pytest.mark.asyncio
async def test_record_store_failures_are_tolerated(caplog):
    with caplog.at_level(logging.WARNING, logger="flowexec.workflow.executor"):
        run = await run_workflow(workflow([trigger()], []), execution_id="exec-1", record_store=BrokenStore())

    assert run.success is True
    assert "database is down" in caplog.text


def test_run_workflow_sync():
    """The blocking wrapper runs the same executor."""
    run = run_workflow_sync(condition_workflow("yes"), {"x": 1}, execution_id="exec-sync")

    assert run.success is True
    assert "yes" in run.results


@pytest.mark.asyncio
async def test_catalog_condition_routes_on_handles():
    """A Condition referenced by its catalog id still follows only one branch."""
    wf = workflow(
        [trigger(), action("cond", "system/condition", condition="false"),
         action("yes", "test.echo"), action("no", "test.echo")],
        [edge("t", "cond"), edge("cond", "yes", "true"), edge("cond", "no", "false")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert "no" in run.results
    assert "yes" not in run.results


@pytest.mark.asyncio
async def test_catalog_switch_routes_on_matched_output():
    cases = json.dumps([{"value": "CA", "output": "west"}])
    wf = workflow(
        [trigger(), action("sw", "system/switch", value="CA", cases=cases),
         action("west", "test.echo"), action("d", "test.echo")],
        [edge("t", "sw"), edge("sw", "west", "west"), edge("sw", "d", "default")],
    )
    run = await run_workflow(wf, execution_id="exec-1")

    assert "west" in run.results
    assert "d" not in run.results
