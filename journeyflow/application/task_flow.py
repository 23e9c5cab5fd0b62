"""
Task creation flow.

Every task being drafted is its own instance of this flow, keyed by the
task id: ``journeyflow:task-flow:task-1``, ``journeyflow:task-flow:task-2``...
"""
from journeyflow.infra.flow import FlowBuilder, FlowDefinition

TASK_FLOW_ID = "task-flow"


def build_task_flow() -> FlowDefinition:
    return (
        FlowBuilder(TASK_FLOW_ID)
        .step("task_type", next="details")
        .step("details", next="assign")
        .step("assign", next="review")
        .step("review", next="complete")
        .step("complete")
        .build()
    )
