# journeyflow/infra/flow/navigation.py
"""
Pure navigation logic.

This module decides destinations, merges context updates and builds or
validates instance state. It never touches storage or observers; the
FlowInstance owns those side effects.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Mapping, Optional

from journeyflow.infra.flow.definition import FlowDefinition
from journeyflow.infra.flow.errors import ConfigError, NavigationError
from journeyflow.infra.flow.models import (
    ContextUpdate,
    FlowContext,
    FlowState,
    FlowStatus,
    HistoryEntry,
    PathEntry,
    Single,
    StepId,
    Terminal,
)


def apply_context_update(current: FlowContext, update: Optional[ContextUpdate]) -> FlowContext:
    """
    Apply a context update and return the new context.

    A mapping is shallow-merged into a copy of the current context. A callable
    receives a copy of the current context and its return value becomes the
    new context.

    Args:
        current: Current context (never mutated)
        update: Patch mapping, updater function, or None

    Returns:
        The new context

    Raises:
        TypeError: If the update has an unsupported type or the updater
            does not return a mapping
    """
    if update is None:
        return dict(current)
    if callable(update):
        result = update(dict(current))
        if not isinstance(result, Mapping):
            raise TypeError(f"Context updater must return a mapping, got {type(result).__name__}")
        return dict(result)
    if isinstance(update, Mapping):
        return {**current, **update}
    raise TypeError(f"Unsupported context update: {type(update).__name__}")


def create_initial_state(
    definition: FlowDefinition, initial_context: Optional[Mapping] = None, now: Optional[datetime] = None
) -> FlowState:
    """
    Build the state of a never-run instance.

    Args:
        definition: Flow definition
        initial_context: Caller-supplied context defaults
        now: Start timestamp

    Returns:
        Fresh FlowState positioned on the start step
    """
    state = FlowState(step_id=definition.start, context=dict(initial_context or {}))
    if now is not None:
        state.started_at = now
    state.history = [HistoryEntry(step_id=definition.start, started_at=state.started_at)]
    state.path = [PathEntry(step_id=definition.start, timestamp=state.started_at)]
    if definition.is_terminal(definition.start):
        state.status = FlowStatus.COMPLETED
        state.completed_at = state.started_at
    return state


class TransitionResolver:
    """
    Determines the destination of a forward navigation.

    Handles the three shapes of NextSpec: terminal steps, single destinations
    and branches (context-driven through a resolver, or component-driven
    through an explicit target).
    """

    def __init__(self, definition: FlowDefinition):
        """
        Initialize the resolver.

        Args:
            definition: The flow definition to navigate
        """
        self.definition = definition

    def resolve(self, step_id: StepId, context: FlowContext, target: Optional[StepId] = None) -> Optional[StepId]:
        """
        Compute where a forward navigation from ``step_id`` lands.

        Args:
            step_id: Current step
            context: Context after the payload has been merged
            target: Explicit destination requested by the caller

        Returns:
            The destination step id, or None when a resolver asks to stay

        Raises:
            NavigationError: If the step is terminal, the target is not an
                allowed destination or disagrees with the step's resolver, or a
                branch has neither resolver nor target
            ConfigError: If a resolver returns a step outside its branch
        """
        next_spec = self.definition.next_spec(step_id)

        if isinstance(next_spec, Terminal):
            raise NavigationError(f"Step '{step_id}' is terminal; flow '{self.definition.id}' cannot go further")

        if target is not None and target not in next_spec.targets:
            raise NavigationError(
                f"Invalid target '{target}' from step '{step_id}'. "
                f"Allowed: {', '.join(next_spec.targets)}"
            )

        if isinstance(next_spec, Single):
            return next_spec.target

        resolver = self.definition.resolver_for(step_id)
        if resolver is None:
            if target is None:
                raise NavigationError(
                    f"Step '{step_id}' branches to {', '.join(next_spec.targets)}; "
                    f"next() needs an explicit target"
                )
            return target

        destination = resolver(dict(context))
        if destination is not None and destination not in next_spec.targets:
            raise ConfigError(
                f"Resolver for step '{step_id}' returned '{destination}', "
                f"which is not one of: {', '.join(next_spec.targets)}"
            )
        if target is not None and target != destination:
            raise NavigationError(
                f"Invalid target '{target}' from step '{step_id}': "
                f"the resolver selects '{destination}'"
            )
        return destination


def validate_restored_state(state: FlowState, definition: FlowDefinition) -> List[str]:
    """
    Check that a restored state is consistent with the current definition.

    Args:
        state: State rebuilt from a persisted record
        definition: Current flow definition

    Returns:
        A list of problems (empty when the state can be adopted)
    """
    problems: List[str] = []
    available = ", ".join(definition.step_ids)

    if not definition.has_step(state.step_id):
        problems.append(f"Current step '{state.step_id}' not found in flow definition. Available steps: {available}")

    if not state.path:
        problems.append("Path cannot be empty")
    else:
        if state.path[0].step_id != definition.start:
            problems.append(f"Path must start with '{definition.start}', got '{state.path[0].step_id}'")
        if state.path[-1].step_id != state.step_id:
            problems.append(
                f"Current step '{state.step_id}' must match last path entry '{state.path[-1].step_id}'"
            )

    for step_id in {*state.visited_steps, *state.path_steps}:
        if not definition.has_step(step_id):
            problems.append(f"State references non-existent step '{step_id}'")

    if definition.has_step(state.step_id):
        expected = FlowStatus.COMPLETED if definition.is_terminal(state.step_id) else FlowStatus.ACTIVE
        if state.status != expected:
            problems.append(f"Status '{state.status}' doesn't match expected '{expected}' for step '{state.step_id}'")

    return problems
