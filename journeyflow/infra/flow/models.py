# journeyflow/infra/flow/models.py
"""
Core data models and types for the flow engine.

This module contains the dataclasses, enums, protocols and type aliases
shared by the definition, navigation, persistence and event layers.
"""
from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Union

if TYPE_CHECKING:
    from journeyflow.infra.flow.schemas import PersistedFlowState


StepId = str
FlowContext = Dict[str, Any]

# A patch is shallow-merged; an updater's return value replaces the context.
ContextUpdate = Union[Mapping[str, Any], Callable[[FlowContext], FlowContext]]

Resolver = Callable[[FlowContext], Optional[StepId]]
MigrateFunction = Callable[["PersistedFlowState", Optional[str]], Optional["PersistedFlowState"]]

# Instance id used when a caller runs a single shared instance of a flow.
DEFAULT_INSTANCE_ID = "default"


def utcnow() -> datetime:
    """Timezone-aware current time, the engine's only clock source by default."""
    return datetime.now(timezone.utc)


# ============================================================
#                   STATUS AND ACTIONS
# ============================================================
class FlowStatus(enum.StrEnum):
    """Lifecycle status of a flow instance."""
    ACTIVE = "active"
    COMPLETED = "completed"


class NavigationAction(enum.StrEnum):
    """How the user left a step."""
    NEXT = "next"
    SKIP = "skip"
    BACK = "back"


class Direction(enum.StrEnum):
    """Direction of a transition between two steps."""
    FORWARD = "forward"
    BACKWARD = "backward"


class SaveMode(enum.StrEnum):
    """
    When a flow instance writes its state through the persister.

    - ALWAYS: after every state change
    - NAVIGATION: only after next/skip/back
    - DEBOUNCED: after every state change, coalesced within a time window
    - MANUAL: only when save() is called explicitly
    """
    ALWAYS = "always"
    NAVIGATION = "navigation"
    DEBOUNCED = "debounced"
    MANUAL = "manual"


# ============================================================
#                   STEP TRANSITIONS
# ============================================================
@dataclass(frozen=True)
class Terminal:
    """The step ends the flow."""

    @property
    def targets(self) -> Tuple[StepId, ...]:
        return ()


@dataclass(frozen=True)
class Single:
    """The step always moves to one destination."""
    target: StepId

    @property
    def targets(self) -> Tuple[StepId, ...]:
        return (self.target,)


@dataclass(frozen=True)
class Branch:
    """
    The step moves to one of several destinations.

    The destination is chosen either by a resolver registered on the flow
    definition (context-driven) or by an explicit target passed to next()
    (component-driven).
    """
    targets: Tuple[StepId, ...]


NextSpec = Union[Terminal, Single, Branch]


def parse_next(value: Any) -> NextSpec:
    """
    Convert a raw ``next`` declaration into a NextSpec.

    Args:
        value: None, a step id, or a list/tuple of step ids

    Returns:
        Terminal, Single or Branch

    Raises:
        TypeError: If the value has an unsupported type
    """
    if value is None:
        return Terminal()
    if isinstance(value, str):
        return Single(value)
    if isinstance(value, (list, tuple)):
        return Branch(tuple(value))
    raise TypeError(f"Unsupported 'next' declaration: {value!r}")


@dataclass(frozen=True)
class StepSpec:
    """
    Declarative description of one step.

    Attributes:
        next: Where the step can lead
        meta: Extra declarative properties (label, analytics tags, ...)
    """
    next: NextSpec = field(default_factory=Terminal)
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.next, Terminal)


# ============================================================
#                   INSTANCE STATE
# ============================================================
@dataclass
class HistoryEntry:
    """
    One visit of a step, appended for every step reached (forward or backward).

    Attributes:
        step_id: The visited step
        started_at: When the user arrived on the step
        completed_at: When the user left the step (None while still there)
        action: How the user left the step (None while still there)
    """
    step_id: StepId
    started_at: datetime
    completed_at: Optional[datetime] = None
    action: Optional[NavigationAction] = None


@dataclass
class PathEntry:
    """One frame of the navigation stack used by back()."""
    step_id: StepId
    timestamp: datetime


@dataclass
class FlowState:
    """
    Snapshot of a flow instance.

    Attributes:
        step_id: Current step
        context: Accumulated user data
        status: ACTIVE until a terminal step is reached
        history: Monotonic log of every visit
        path: Stack of steps leading to the current one
        started_at: When the instance started
        completed_at: When the instance reached a terminal step
    """
    step_id: StepId
    context: FlowContext = field(default_factory=dict)
    status: FlowStatus = FlowStatus.ACTIVE
    history: List[HistoryEntry] = field(default_factory=list)
    path: List[PathEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def visited_steps(self) -> List[StepId]:
        """Step ids of the history, in visit order."""
        return [entry.step_id for entry in self.history]

    @property
    def path_steps(self) -> List[StepId]:
        """Step ids of the navigation stack, bottom first."""
        return [entry.step_id for entry in self.path]

    def copy(self) -> FlowState:
        """Deep copy, so callers can never mutate the live instance state."""
        return copy.deepcopy(self)


# ============================================================
#                   EVENT SYSTEM
# ============================================================
class EventType(enum.Enum):
    """Lifecycle notifications emitted by a flow instance."""
    NEXT = "NEXT"
    SKIP = "SKIP"
    BACK = "BACK"
    TRANSITION = "TRANSITION"
    COMPLETE = "COMPLETE"
    CONTEXT_UPDATE = "CONTEXT_UPDATE"


@dataclass(frozen=True)
class TransitionEvent:
    """
    A move from one step to another.

    Attributes:
        event_type: NEXT, SKIP, BACK or TRANSITION
        flow_id: Flow the instance runs
        instance_id: Instance that moved
        from_step: Step left
        to_step: Step reached
        direction: FORWARD for next/skip, BACKWARD for back
        old_context: Context before the operation
        new_context: Context after the operation
    """
    event_type: EventType
    flow_id: str
    instance_id: str
    from_step: StepId
    to_step: StepId
    direction: Direction
    old_context: FlowContext
    new_context: FlowContext


@dataclass(frozen=True)
class CompleteEvent:
    """The instance reached a terminal step."""
    flow_id: str
    instance_id: str
    context: FlowContext
    event_type: EventType = EventType.COMPLETE


@dataclass(frozen=True)
class ContextUpdateEvent:
    """The context changed."""
    flow_id: str
    instance_id: str
    old_context: FlowContext
    new_context: FlowContext
    event_type: EventType = EventType.CONTEXT_UPDATE


FlowEvent = Union[TransitionEvent, CompleteEvent, ContextUpdateEvent]


# ============================================================
#                   STORAGE INTERFACE
# ============================================================
class StorageAdapter(Protocol):
    """
    Protocol for the durable key/value store behind a Persister.

    Implementations include MemoryStorage, FileStorage and SQLStorage.
    Values are opaque bytes; the Persister owns serialization.
    """

    def get(self, key: str) -> Optional[bytes]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            The stored bytes, or None if the key is absent
        """
        ...

    def set(self, key: str, value: bytes) -> None:
        """
        Write a value, replacing any previous one.

        Args:
            key: Storage key
            value: Bytes to store
        """
        ...

    def remove(self, key: str) -> None:
        """
        Delete a value. Removing an absent key is a no-op.

        Args:
            key: Storage key
        """
        ...

    def list_keys(self, prefix: str) -> List[str]:
        """
        Enumerate keys starting with a prefix.

        Args:
            prefix: Key prefix ("" lists everything)

        Returns:
            Matching keys
        """
        ...
