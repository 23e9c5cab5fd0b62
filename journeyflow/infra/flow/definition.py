# journeyflow/infra/flow/definition.py
"""
Declarative flow definitions.

A flow definition is an immutable graph of steps and allowed transitions,
optionally annotated with resolver functions for context-driven branching
and a migration function for persisted state written by older versions.

Example:
    ```python
    onboarding = define_flow(
        {
            "id": "onboarding",
            "start": "welcome",
            "steps": {
                "welcome": {"next": "user_type"},
                "user_type": {"next": ["business", "personal"]},
                "business": {"next": "complete"},
                "personal": {"next": "complete"},
                "complete": {},
            },
        }
    ).with_resolvers(
        lambda steps: {
            "user_type": lambda ctx: steps.business if ctx.get("type") == "business" else steps.personal,
        }
    )
    ```
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from journeyflow.infra.flow.errors import ConfigError
from journeyflow.infra.flow.models import (
    Branch,
    MigrateFunction,
    NextSpec,
    Resolver,
    StepId,
    StepSpec,
    parse_next,
)

# Keys of a raw step declaration that are not stored as metadata.
_STEP_KEYS = {"next", "resolve"}


# ============================================================
#                   STEP REFERENCES
# ============================================================
class StepRefs:
    """
    Attribute access to step ids, handed to resolver and runtime builders.

    ``steps.business`` returns ``"business"``; a typo raises ConfigError
    immediately instead of producing a silently wrong destination.
    """

    def __init__(self, step_ids: Tuple[StepId, ...]):
        self._step_ids = frozenset(step_ids)

    def __getattr__(self, name: str) -> StepId:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._step_ids:
            raise ConfigError(
                f"Unknown step '{name}'. Available steps: {', '.join(sorted(self._step_ids))}"
            )
        return name

    def __getitem__(self, name: str) -> StepId:
        return self.__getattr__(name)

    def __contains__(self, name: object) -> bool:
        return name in self._step_ids

    def __iter__(self) -> Iterator[StepId]:
        return iter(sorted(self._step_ids))


RuntimeBuilder = Callable[[StepRefs], Mapping[str, Any]]
ResolverBuilder = Callable[[StepRefs], Mapping[StepId, Resolver]]


def step(next: List[StepId], resolve: Resolver, **meta: Any) -> Dict[str, Any]:
    """
    Declare a branching step together with its resolver.

    Args:
        next: Possible destinations (at least two)
        resolve: Function mapping the context to one of ``next``
        **meta: Extra properties kept on the StepSpec (label, tags, ...)

    Returns:
        A raw step declaration accepted by define_flow()

    Example:
        ```python
        "user_type": step(
            next=["business", "personal"],
            resolve=lambda ctx: "business" if ctx.get("type") == "business" else "personal",
            label="Who are you?",
        )
        ```
    """
    return {"next": list(next), "resolve": resolve, **meta}


# ============================================================
#                   FLOW DEFINITION
# ============================================================
@dataclass(frozen=True)
class FlowDefinition:
    """
    Immutable step graph shared by every instance of a flow.

    Attributes:
        id: Logical identity of the flow, stable across variants
        start: Entry step
        steps: Map of step id to StepSpec
        variant_id: Optional sub-identity for alternate graphs of the same flow
        version: Schema version of the persisted state
        resolvers: Map of branching step id to resolver
        migrate: Optional function upgrading persisted state of older versions
    """
    id: str
    start: StepId
    steps: Mapping[StepId, StepSpec]
    variant_id: Optional[str] = None
    version: Optional[str] = None
    resolvers: Mapping[StepId, Resolver] = field(default_factory=lambda: MappingProxyType({}))
    migrate: Optional[MigrateFunction] = None

    # ---------- Read helpers ----------

    @property
    def step_ids(self) -> Tuple[StepId, ...]:
        return tuple(self.steps.keys())

    def has_step(self, step_id: StepId) -> bool:
        return step_id in self.steps

    def step(self, step_id: StepId) -> StepSpec:
        """
        Get a step by id.

        Raises:
            KeyError: If the step does not exist
        """
        if step_id not in self.steps:
            raise KeyError(f"Step '{step_id}' not found in flow '{self.id}'")
        return self.steps[step_id]

    def next_spec(self, step_id: StepId) -> NextSpec:
        return self.step(step_id).next

    def next_targets(self, step_id: StepId) -> Tuple[StepId, ...]:
        return self.step(step_id).next.targets

    def is_terminal(self, step_id: StepId) -> bool:
        return self.step(step_id).is_terminal

    def resolver_for(self, step_id: StepId) -> Optional[Resolver]:
        return self.resolvers.get(step_id)

    def step_refs(self) -> StepRefs:
        return StepRefs(self.step_ids)

    # ---------- Runtime configuration ----------

    def with_resolvers(self, builder: ResolverBuilder) -> FlowDefinition:
        """
        Attach resolvers for context-driven branching.

        Args:
            builder: Receives StepRefs, returns a map of step id to resolver

        Returns:
            A new definition; this one is left untouched

        Raises:
            ConfigError: If a resolver targets a missing or non-branching step
        """
        resolvers = dict(builder(self.step_refs()) or {})
        _check_resolvers(self, resolvers)
        merged = {**self.resolvers, **resolvers}
        return dataclasses.replace(self, resolvers=MappingProxyType(merged))

    def with_migration(self, migrate: MigrateFunction) -> FlowDefinition:
        """
        Attach a migration function for persisted state of other versions.

        Args:
            migrate: ``(state, from_version) -> state | None``

        Returns:
            A new definition; this one is left untouched
        """
        return dataclasses.replace(self, migrate=migrate)

    def to_config(self) -> Dict[str, Any]:
        """Serializable view of the graph (no resolvers, no migration)."""
        steps: Dict[str, Any] = {}
        for step_id, spec in self.steps.items():
            raw: Dict[str, Any] = dict(spec.meta)
            targets = spec.next.targets
            if isinstance(spec.next, Branch):
                raw["next"] = list(targets)
            elif targets:
                raw["next"] = targets[0]
            steps[step_id] = raw
        config: Dict[str, Any] = {"id": self.id, "start": self.start, "steps": steps}
        if self.variant_id is not None:
            config["variant_id"] = self.variant_id
        if self.version is not None:
            config["version"] = self.version
        return config


# ============================================================
#                   CONSTRUCTION AND VALIDATION
# ============================================================
def define_flow(config: Mapping[str, Any], runtime: Optional[RuntimeBuilder] = None) -> FlowDefinition:
    """
    Build and validate a flow definition.

    Args:
        config: ``{"id", "start", "steps", "variant_id"?, "version"?}``; each
            step is a mapping with an optional ``next`` (None, a step id or a
            list of step ids), an optional inline ``resolve`` and free metadata
        runtime: Optional builder ``(steps) -> {"resolve": {...}, "migrate": fn}``

    Returns:
        The immutable FlowDefinition

    Raises:
        ConfigError: If the definition is malformed; every problem is listed
    """
    flow_id = config.get("id")
    start = config.get("start")
    raw_steps = config.get("steps") or {}

    problems: List[str] = []
    if not flow_id or not isinstance(flow_id, str):
        problems.append("Flow 'id' must be a non-empty string")
    if not isinstance(raw_steps, Mapping) or not raw_steps:
        raise ConfigError(f"Invalid flow definition '{flow_id}'", ["Flow must declare at least one step"])

    steps: Dict[StepId, StepSpec] = {}
    inline_resolvers: Dict[StepId, Resolver] = {}
    for step_id, raw in raw_steps.items():
        raw = raw or {}
        try:
            next_spec = parse_next(raw.get("next"))
        except TypeError as e:
            problems.append(f"Step '{step_id}': {e}")
            continue
        meta = {k: v for k, v in raw.items() if k not in _STEP_KEYS}
        steps[step_id] = StepSpec(next=next_spec, meta=MappingProxyType(meta))
        if raw.get("resolve") is not None:
            inline_resolvers[step_id] = raw["resolve"]

    problems.extend(validate_steps(start, steps))

    if problems:
        raise ConfigError(f"Invalid flow definition '{flow_id}'", problems)

    definition = FlowDefinition(
        id=flow_id,
        start=start,
        steps=MappingProxyType(steps),
        variant_id=config.get("variant_id"),
        version=config.get("version"),
    )

    if inline_resolvers:
        definition = definition.with_resolvers(lambda _: inline_resolvers)

    if runtime is not None:
        runtime_config = runtime(definition.step_refs()) or {}
        if runtime_config.get("resolve"):
            resolvers = dict(runtime_config["resolve"])
            definition = definition.with_resolvers(lambda _: resolvers)
        if runtime_config.get("migrate"):
            definition = definition.with_migration(runtime_config["migrate"])

    return definition


def validate_steps(start: Any, steps: Mapping[StepId, StepSpec]) -> List[str]:
    """
    Check the structural invariants of a step graph.

    Args:
        start: Declared entry step
        steps: Parsed steps

    Returns:
        A list of problems (empty when the graph is valid)
    """
    problems: List[str] = []
    available = ", ".join(steps.keys())

    if start not in steps:
        problems.append(f"Start step '{start}' does not exist. Available steps: {available}")

    for step_id, spec in steps.items():
        if isinstance(spec.next, Branch) and len(spec.next.targets) < 2:
            problems.append(
                f"Step '{step_id}' declares a branch with {len(spec.next.targets)} "
                f"destination(s); a branch needs at least two"
            )
        for target in spec.next.targets:
            if target not in steps:
                problems.append(
                    f"Step '{step_id}' references non-existent step '{target}'. Available steps: {available}"
                )

    return problems


def _check_resolvers(definition: FlowDefinition, resolvers: Mapping[StepId, Resolver]) -> None:
    problems = []
    for step_id, resolver in resolvers.items():
        if step_id not in definition.steps:
            problems.append(f"Resolver registered for unknown step '{step_id}'")
        elif not isinstance(definition.steps[step_id].next, Branch):
            problems.append(f"Resolver registered for step '{step_id}' whose 'next' is not a list")
        elif not callable(resolver):
            problems.append(f"Resolver for step '{step_id}' is not callable")
    if problems:
        raise ConfigError(f"Invalid resolvers for flow '{definition.id}'", problems)
