"""
Tests for the application flows and the flow registry.
"""
import pytest

from journeyflow.application.branching_flow import build_branching_flow
from journeyflow.application.flow_registry import FlowRegistry, build_registry
from journeyflow.application.onboarding_flow import build_express_onboarding, build_simple_flow
from journeyflow.application.survey_flow import QUESTIONS, build_survey_flow, score_answers
from journeyflow.application.task_flow import build_task_flow
from journeyflow.infra.flow import FlowInstance, MemoryStorage, NavigationAction, Persister


def visited(flow):
    return [entry.step_id for entry in flow.path]


def test_simple_flow_with_skipped_preferences():
    flow = FlowInstance(build_simple_flow(), initial_context={"name": "", "notifications": True})

    flow.next()
    flow.next({"name": "Ada"})
    flow.skip({"skipped_preferences": True})

    assert flow.is_complete
    assert flow.history[2].action == NavigationAction.SKIP
    assert flow.context["skipped_preferences"] is True


@pytest.mark.parametrize(
    "user_type, setup, expected",
    [
        ("business", "preferences", ["welcome", "profile", "user_type", "business_details", "setup_preference", "preferences", "complete"]),
        ("business", "complete", ["welcome", "profile", "user_type", "business_details", "setup_preference", "complete"]),
        ("personal", "preferences", ["welcome", "profile", "user_type", "setup_preference", "preferences", "complete"]),
        ("personal", "complete", ["welcome", "profile", "user_type", "setup_preference", "complete"]),
    ],
)
def test_branching_flow_paths(user_type, setup, expected):
    """
    Test: The four paths through the branching flow.

    Verifies:
    - user_type is resolved from the context
    - setup_preference follows the explicit target
    """
    flow = FlowInstance(build_branching_flow())
    flow.next()
    flow.next()
    flow.next({"user_type": user_type})
    if user_type == "business":
        flow.next({"company_name": "Acme"})
    flow.next(setup, {"setup_preference": setup})
    if setup == "preferences":
        flow.next()

    assert visited(flow) == expected
    assert flow.is_complete


def test_task_flow_instances_do_not_interfere():
    storage = MemoryStorage()
    persister = Persister(storage)
    definition = build_task_flow()

    bug = FlowInstance(definition, persister=persister, instance_id="task-1")
    feature = FlowInstance(definition, persister=persister, instance_id="task-2")
    bug.next({"task_type": "bug"})
    bug.next({"title": "Crash"})
    feature.next({"task_type": "feature"})

    assert [r.instance_id for r in persister.list("task-flow")] == ["task-1", "task-2"]
    assert FlowInstance(definition, persister=persister, instance_id="task-1").step_id == "assign"
    assert FlowInstance(definition, persister=persister, instance_id="task-2").step_id == "details"


def test_survey_scores_answers():
    flow = FlowInstance(build_survey_flow())
    flow.next()
    for question, rating in zip(QUESTIONS, (5, 4, 3)):
        flow.next({question: rating})
    flow.set_context({QUESTIONS[3]: 4})

    flow.next(score_answers)

    assert flow.step_id == "results"
    assert flow.context["questions_answered"] == 4
    assert flow.context["score"] == 4.0
    assert flow.definition.step("question2").meta["field"] == "q2_recommend"


def test_score_without_answers():
    assert score_answers({})["score"] is None


def test_registry_variants():
    """
    Test: Standard and express onboarding are served side by side.

    Verifies:
    - The standard variant is the default
    - The express variant is reachable by variant id
    """
    registry = build_registry()

    assert registry.get("onboarding-flow").variant_id == "standard"
    assert registry.get("onboarding-flow", "express").step_ids == build_express_onboarding().step_ids
    assert registry.variants("onboarding-flow") == ["standard", "express"]
    assert "task-flow" in registry


def test_registry_unknown_flow():
    registry = build_registry()

    with pytest.raises(KeyError):
        registry.get("missing")
    with pytest.raises(KeyError):
        registry.get("onboarding-flow", "beta")


def test_registry_rejects_duplicates():
    registry = FlowRegistry().register(build_task_flow())

    with pytest.raises(ValueError):
        registry.register(build_task_flow())
