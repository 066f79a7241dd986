"""Example: price a batch of loan scenarios with a small workflow graph.

The trigger payload carries the scenarios; the graph keeps the conforming
ones, ranks them by rate and hands the best three to a Code step.
"""
import asyncio
import json
import logging

from flowexec.config import config
from flowexec.persistence.records import InMemoryExecutionRecordStore, open_record_store
from flowexec.workflow.executor import run_workflow
from flowexec.workflow.loader import load_workflow

WORKFLOW_YAML = """
id: best-rates
name: Best rates
nodes:
  - id: trigger-1
    data:
      type: trigger
      label: Pricing Request
      config:
        triggerType: Manual
  - id: conforming
    data:
      type: action
      label: Conforming Only
      config:
        actionType: Filter
        condition: '{"match": "and", "conditions": [{"leftValue": "loanAmount", "operator": "less_than_or_equal", "rightValue": "766550", "dataType": "number"}]}'
  - id: by-rate
    data:
      type: action
      label: By Rate
      config:
        actionType: system/sort
        sortField: rate
        dataType: number
  - id: top-3
    data:
      type: action
      label: Top 3
      config:
        actionType: Limit
        maxItems: "3"
  - id: summary
    data:
      type: action
      label: Summary
      config:
        actionType: Code
        code: |
          best = items[0]["json"]
          result = {
              "requestedBy": nodes["Pricing Request"].json.get("requestedBy"),
              "bestProgram": best.get("program"),
              "bestRate": best.get("rate"),
              "considered": len(items),
          }
edges:
  - {source: trigger-1, target: conforming}
  - {source: conforming, target: by-rate}
  - {source: by-rate, target: top-3}
  - {source: top-3, target: summary}
"""


async def main():
    logging.basicConfig(level=config.log_level)

    workflow = load_workflow(WORKFLOW_YAML)
    trigger_input = {
        "requestedBy": "loan-officer-17",
        "items": [
            {"program": "30yr fixed", "loanAmount": 450000, "rate": 6.875},
            {"program": "15yr fixed", "loanAmount": 450000, "rate": 6.125},
            {"program": "jumbo 30yr", "loanAmount": 950000, "rate": 6.5},
            {"program": "5/6 ARM", "loanAmount": 450000, "rate": 6.25},
            {"program": "FHA 30yr", "loanAmount": 380000, "rate": 6.0},
        ],
    }

    # Postgres when DATABASE_URL is set (the workflow_executions row must exist)
    store = await open_record_store()
    run = await run_workflow(workflow, trigger_input, execution_id="example-1", record_store=store)

    print("Summary:", json.dumps(run.results["summary"].to_dict(), indent=2, default=str))
    if isinstance(store, InMemoryExecutionRecordStore):
        print("Record:", store.get("example-1"))
    else:
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
