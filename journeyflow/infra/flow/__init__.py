"""
Framework-agnostic multi-step flow engine.

Main exports:
- define_flow / FlowDefinition: Declarative, validated step graphs
- FlowInstance: One run of a flow (navigation, context, events, persistence)
- Persister: Load/save/list/remove of instance state over a StorageAdapter
- EventDispatcher: Observer registry for lifecycle events

Storage:
- MemoryStorage, FileStorage, SQLStorage: StorageAdapter implementations

Flow builders:
- FlowBuilder: Fluent builder pattern for programmatic flow construction
"""

from journeyflow.infra.flow.definition import FlowDefinition, StepRefs, define_flow, step
from journeyflow.infra.flow.errors import (
    ConfigError,
    FlowError,
    NavigationError,
    PersistenceError,
    StaleDataError,
    StateError,
)
from journeyflow.infra.flow.event_manager import EventDispatcher
from journeyflow.infra.flow.flow import FlowInstance
from journeyflow.infra.flow.flow_builders import FlowBuilder
from journeyflow.infra.flow.models import (
    DEFAULT_INSTANCE_ID,
    Branch,
    CompleteEvent,
    ContextUpdateEvent,
    Direction,
    EventType,
    FlowState,
    FlowStatus,
    HistoryEntry,
    NavigationAction,
    PathEntry,
    SaveMode,
    Single,
    StepSpec,
    StorageAdapter,
    Terminal,
    TransitionEvent,
)
from journeyflow.infra.flow.persister import Persister
from journeyflow.infra.flow.schemas import FlowInstanceRecord, PersistedFlowState
from journeyflow.infra.flow.serializer import JsonSerializer, Serializer
from journeyflow.infra.flow.store import (
    DefaultKeyFormatter,
    FileStorage,
    KeyFormatter,
    MemoryStorage,
    SQLStorage,
)

__all__ = [
    # Main classes
    "FlowDefinition",
    "FlowInstance",
    "Persister",
    "EventDispatcher",
    "define_flow",
    "step",
    "StepRefs",
    # States and types
    "FlowStatus",
    "NavigationAction",
    "Direction",
    "SaveMode",
    "EventType",
    "DEFAULT_INSTANCE_ID",
    # Data models
    "StepSpec",
    "Terminal",
    "Single",
    "Branch",
    "FlowState",
    "HistoryEntry",
    "PathEntry",
    "PersistedFlowState",
    "FlowInstanceRecord",
    "TransitionEvent",
    "CompleteEvent",
    "ContextUpdateEvent",
    # Errors
    "FlowError",
    "ConfigError",
    "NavigationError",
    "StateError",
    "PersistenceError",
    "StaleDataError",
    # Storage
    "StorageAdapter",
    "MemoryStorage",
    "FileStorage",
    "SQLStorage",
    "KeyFormatter",
    "DefaultKeyFormatter",
    "Serializer",
    "JsonSerializer",
    # Flow builders
    "FlowBuilder",
]
