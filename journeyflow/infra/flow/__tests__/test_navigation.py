"""
Tests for flow instance navigation.

This module tests next/skip/back, branching (context-driven and
component-driven), context updates, completion and reset on instances
without persistence.
"""
import pytest

from journeyflow.infra.flow import (
    ConfigError,
    FlowInstance,
    FlowStatus,
    NavigationAction,
    NavigationError,
    define_flow,
)
from conftest import assert_at_step, build_branching_flow


def test_fresh_instance_starts_on_start_step(linear_flow):
    """
    Test: Construction without persisted state.

    Verifies:
    - Current step is the start step, context is the initial context
    - History and path hold the start step
    """
    flow = FlowInstance(linear_flow, initial_context={"name": ""})

    assert_at_step(flow, "welcome", path=["welcome"])
    assert flow.context == {"name": ""}
    assert flow.status == FlowStatus.ACTIVE
    assert [entry.step_id for entry in flow.history] == ["welcome"]
    assert not flow.is_restoring
    assert flow.completed_at is None


def test_linear_navigation_to_completion(linear_flow):
    """
    Test: welcome -> profile -> preferences -> complete.

    Verifies:
    - Every next() moves one step
    - The terminal step completes the flow with a completion time
    """
    flow = FlowInstance(linear_flow)

    flow.next()
    flow.next({"name": "Ada"})
    flow.next()

    assert_at_step(flow, "complete", path=["welcome", "profile", "preferences", "complete"])
    assert flow.status == FlowStatus.COMPLETED
    assert flow.is_complete
    assert flow.completed_at is not None
    assert flow.context == {"name": "Ada"}


def test_next_from_terminal_step_fails(linear_flow):
    flow = FlowInstance(linear_flow)
    for _ in range(3):
        flow.next()

    with pytest.raises(NavigationError):
        flow.next()
    assert_at_step(flow, "complete")


def test_context_driven_branching():
    """
    Test: The resolver of user_type picks the destination from the context.

    Verifies:
    - Business users go to the business step
    - Personal users go to the personal step
    """
    business = FlowInstance(build_branching_flow())
    business.next()
    business.next({"type": "business"})

    personal = FlowInstance(build_branching_flow())
    personal.next()
    personal.next({"type": "personal"})

    assert_at_step(business, "business", path=["welcome", "user_type", "business"])
    assert_at_step(personal, "personal", path=["welcome", "user_type", "personal"])


def test_component_driven_branching(branching_flow):
    """
    Test: An explicit target picks a branch destination.

    Verifies:
    - next(target) moves to the target
    - next(target, update) also merges the update
    """
    flow = FlowInstance(branching_flow)
    flow.next()
    flow.next({"type": "personal"})
    flow.next()

    flow.next("complete", {"setup": "quick"})

    assert_at_step(flow, "complete")
    assert flow.context == {"type": "personal", "setup": "quick"}
    assert flow.is_complete


def test_invalid_target_leaves_state_unchanged(branching_flow):
    """
    Test: A target outside the allowed destinations.

    Verifies:
    - NavigationError is raised
    - Step and context are unchanged (the update was not merged)
    """
    flow = FlowInstance(branching_flow)
    flow.next()

    with pytest.raises(NavigationError, match="Invalid target 'complete'"):
        flow.next("complete", {"type": "business"})

    assert_at_step(flow, "user_type", path=["welcome", "user_type"])
    assert flow.context == {}


def test_target_must_agree_with_resolver(branching_flow):
    """
    Test: An explicit target on a step with a registered resolver.

    Verifies:
    - A branch member that differs from the resolver's choice is rejected
    - Step and context are unchanged after the rejection
    - A target equal to the resolver's choice is followed
    """
    flow = FlowInstance(branching_flow)
    flow.next()

    with pytest.raises(NavigationError, match="the resolver selects 'business'"):
        flow.next("personal", {"type": "business"})

    assert_at_step(flow, "user_type", path=["welcome", "user_type"])
    assert flow.context == {}

    flow.next("business", {"type": "business"})

    assert_at_step(flow, "business", path=["welcome", "user_type", "business"])


def test_branch_without_resolver_needs_target(branching_flow):
    flow = FlowInstance(branching_flow)
    for update in (None, {"type": "business"}, None):
        flow.next(update)

    with pytest.raises(NavigationError, match="needs an explicit target"):
        flow.next()
    assert_at_step(flow, "setup")


def test_resolver_returning_unknown_step_is_config_error():
    """
    Test: A resolver returning a step outside its branch.

    Verifies:
    - ConfigError is raised at navigation time
    - The instance stays on the branching step
    """
    definition = define_flow(
        {"id": "f", "start": "a", "steps": {"a": {"next": ["b", "c"]}, "b": {}, "c": {}, "d": {}}}
    ).with_resolvers(lambda steps: {"a": lambda ctx: "d"})
    flow = FlowInstance(definition)

    with pytest.raises(ConfigError, match="returned 'd'"):
        flow.next()
    assert_at_step(flow, "a")


def test_resolver_returning_none_stays_on_step():
    definition = define_flow(
        {"id": "f", "start": "a", "steps": {"a": {"next": ["b", "c"]}, "b": {}, "c": {}}}
    ).with_resolvers(lambda steps: {"a": lambda ctx: ctx.get("choice")})
    flow = FlowInstance(definition)

    flow.next({"draft": True})

    assert_at_step(flow, "a", path=["a"])
    assert flow.context == {"draft": True}

    flow.next({"choice": "c"})
    assert_at_step(flow, "c")


def test_back_returns_to_previous_step_and_keeps_context(linear_flow):
    """
    Test: back() pops the path.

    Verifies:
    - Current step is the previous path entry
    - Context is not rolled back
    - History keeps growing
    """
    flow = FlowInstance(linear_flow)
    flow.next({"a": 1})
    flow.next({"b": 2})

    flow.back()

    assert_at_step(flow, "profile", path=["welcome", "profile"])
    assert flow.context == {"a": 1, "b": 2}
    assert [entry.step_id for entry in flow.history] == ["welcome", "profile", "preferences", "profile"]
    assert flow.history[2].action == NavigationAction.BACK


def test_back_on_start_step_is_noop(linear_flow):
    flow = FlowInstance(linear_flow)

    flow.back()

    assert_at_step(flow, "welcome", path=["welcome"])
    assert len(flow.history) == 1
    assert not flow.can_go_back


def test_back_after_completion_is_noop(linear_flow):
    flow = FlowInstance(linear_flow)
    for _ in range(3):
        flow.next()

    flow.back()

    assert_at_step(flow, "complete")
    assert flow.status == FlowStatus.COMPLETED


def test_back_then_next_follows_branch_again():
    flow = FlowInstance(build_branching_flow())
    flow.next()
    flow.next({"type": "business"})
    flow.back()

    flow.next({"type": "personal"})

    assert_at_step(flow, "personal", path=["welcome", "user_type", "personal"])


def test_skip_marks_history_entry(linear_flow):
    """
    Test: skip() moves like next() but records the action.

    Verifies:
    - The skipped step's history entry has action SKIP
    - Other entries left with next() have action NEXT
    """
    flow = FlowInstance(linear_flow)
    flow.next()
    flow.next()

    flow.skip()

    assert_at_step(flow, "complete")
    actions = [entry.action for entry in flow.history]
    assert actions == [NavigationAction.NEXT, NavigationAction.NEXT, NavigationAction.SKIP, None]
    assert flow.history[2].completed_at is not None


def test_set_context_merges_without_moving(linear_flow):
    flow = FlowInstance(linear_flow, initial_context={"name": "", "notifications": True})

    flow.set_context({"name": "Ada"})
    flow.set_context(lambda ctx: {**ctx, "notifications": not ctx["notifications"]})

    assert_at_step(flow, "welcome")
    assert flow.context == {"name": "Ada", "notifications": False}


def test_updater_replaces_context(linear_flow):
    flow = FlowInstance(linear_flow, initial_context={"a": 1, "b": 2})

    flow.next(lambda ctx: {"a": ctx["a"] + 1})

    assert flow.context == {"a": 2}


def test_context_property_is_a_copy(linear_flow):
    flow = FlowInstance(linear_flow, initial_context={"a": 1})

    flow.context["a"] = 99
    flow.get_state().history.clear()

    assert flow.context == {"a": 1}
    assert len(flow.history) == 1


def test_update_given_twice_is_rejected(linear_flow):
    flow = FlowInstance(linear_flow)

    with pytest.raises(TypeError):
        flow.next({"a": 1}, {"b": 2})


def test_reset_restores_initial_state(linear_flow):
    """
    Test: reset() after completion.

    Verifies:
    - Back on the start step with the initial context
    - Status is ACTIVE again with a fresh history
    """
    flow = FlowInstance(linear_flow, initial_context={"name": ""})
    for _ in range(3):
        flow.next({"name": "Ada"})

    flow.reset()

    assert_at_step(flow, "welcome", path=["welcome"])
    assert flow.context == {"name": ""}
    assert flow.status == FlowStatus.ACTIVE
    assert len(flow.history) == 1
    assert flow.completed_at is None


def test_single_step_flow_is_complete_immediately():
    flow = FlowInstance(define_flow({"id": "done", "start": "end", "steps": {"end": {}}}))

    assert flow.is_complete
    with pytest.raises(NavigationError):
        flow.next()


def test_next_steps_lists_allowed_destinations(branching_flow):
    flow = FlowInstance(branching_flow)
    flow.next()

    assert flow.next_steps == ("business", "personal")


def test_navigation_is_refused_while_restoring(linear_flow, persister):
    """
    Test: An instance built with restore=False stays in the restoring state.

    Verifies:
    - next() raises StateError (a NavigationError)
    - restore() makes the instance usable
    """
    from journeyflow.infra.flow import StateError

    flow = FlowInstance(linear_flow, persister=persister, restore=False)

    assert flow.is_restoring
    with pytest.raises(StateError):
        flow.next()
    with pytest.raises(NavigationError):
        flow.back()

    flow.restore()
    flow.next()
    assert_at_step(flow, "profile")
