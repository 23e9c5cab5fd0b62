# journeyflow/infra/flow/flow_builders.py
"""
Builder pattern for flow definitions.

This module provides a fluent builder API for constructing flow definitions
programmatically instead of from a raw mapping.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from journeyflow.infra.flow.definition import FlowDefinition, define_flow
from journeyflow.infra.flow.models import MigrateFunction, Resolver, StepId


# ============================================================
#                   BUILDER PATTERN
# ============================================================
class FlowBuilder:
    """
    Fluent builder for constructing flow definitions.

    The first declared step is the start step unless start() is called.

    Example:
        ```python
        flow = (FlowBuilder("task")
            .step("task_type", next="details")
            .step("details", next=["assign", "review"])
            .step("assign", next="review")
            .step("review", next="complete")
            .step("complete")
            .resolve("details", lambda ctx: "assign" if ctx.get("team") else "review")
            .build())
        ```
    """

    def __init__(self, flow_id: str):
        """
        Initialize the flow builder.

        Args:
            flow_id: Identity of the flow
        """
        self._flow_id = flow_id
        self._start: Optional[StepId] = None
        self._variant_id: Optional[str] = None
        self._version: Optional[str] = None
        self._steps: Dict[StepId, Dict[str, Any]] = {}
        self._resolvers: Dict[StepId, Resolver] = {}
        self._migrate: Optional[MigrateFunction] = None

    def step(
        self,
        step_id: StepId,
        *,
        next: Union[StepId, List[StepId], None] = None,
        **meta: Any,
    ) -> FlowBuilder:
        """
        Add a step.

        Args:
            step_id: Unique identifier for the step
            next: Destination(s); None declares a terminal step
            **meta: Extra declarative properties

        Returns:
            Self for method chaining
        """
        raw: Dict[str, Any] = dict(meta)
        if next is not None:
            raw["next"] = next
        self._steps[step_id] = raw
        if self._start is None:
            self._start = step_id
        return self

    def start(self, step_id: StepId) -> FlowBuilder:
        """Override the entry step."""
        self._start = step_id
        return self

    def variant(self, variant_id: str) -> FlowBuilder:
        """Set the variant identifier."""
        self._variant_id = variant_id
        return self

    def version(self, version: str) -> FlowBuilder:
        """Set the persisted state schema version."""
        self._version = version
        return self

    def resolve(self, step_id: StepId, resolver: Resolver) -> FlowBuilder:
        """
        Register a resolver for a branching step.

        Args:
            step_id: ID of the branching step
            resolver: Function mapping the context to a destination

        Returns:
            Self for method chaining
        """
        self._resolvers[step_id] = resolver
        return self

    def migrate(self, migrate: MigrateFunction) -> FlowBuilder:
        """Register a migration function for older persisted state."""
        self._migrate = migrate
        return self

    def build(self) -> FlowDefinition:
        """
        Validate and return the FlowDefinition.

        Raises:
            ConfigError: If the declared graph is invalid
        """
        config: Dict[str, Any] = {
            "id": self._flow_id,
            "start": self._start,
            "steps": self._steps,
            "variant_id": self._variant_id,
            "version": self._version,
        }
        resolvers = dict(self._resolvers)
        migrate = self._migrate
        return define_flow(
            config,
            lambda steps: {"resolve": resolvers, "migrate": migrate},
        )
