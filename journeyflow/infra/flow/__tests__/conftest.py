"""
Pytest configuration and DRY test utilities.

This module provides reusable fixtures, flow factories, and helpers
for declarative flow testing.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from journeyflow.infra.flow import (
    EventType,
    FileStorage,
    FlowDefinition,
    FlowInstance,
    MemoryStorage,
    Persister,
    SQLStorage,
    define_flow,
)


# ============================================================
#                   FIXTURES
# ============================================================

@pytest.fixture
def storage():
    """In-memory storage, fresh for every test."""
    return MemoryStorage()


@pytest.fixture
def sql_storage(tmp_path):
    """
    Create a temporary SQLite storage.

    The database file is automatically cleaned up after the test
    thanks to pytest's tmp_path fixture.

    Yields:
        SQLStorage: Opened storage instance
    """
    db_path = tmp_path / "test_flow.db"
    storage = SQLStorage(f"sqlite:///{db_path}")
    storage.open()
    yield storage
    storage.close()


@pytest.fixture
def file_storage(tmp_path):
    return FileStorage(str(tmp_path / "flows"))


@pytest.fixture
def clock():
    """Controllable clock; call clock.advance(seconds=...) to move time."""
    return FakeClock()


@pytest.fixture
def persister(storage, clock):
    return Persister(storage, clock=clock)


@pytest.fixture
def linear_flow():
    return build_linear_flow()


@pytest.fixture
def branching_flow():
    return build_branching_flow()


# ============================================================
#                   FLOW FACTORIES (DRY)
# ============================================================

class FakeClock:
    """Deterministic time source."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def build_linear_flow(flow_id: str = "onboarding", version: Optional[str] = None) -> FlowDefinition:
    """
    Factory: welcome -> profile -> preferences -> complete.

    Example:
        definition = build_linear_flow("signup")
    """
    config: Dict[str, Any] = {
        "id": flow_id,
        "start": "welcome",
        "steps": {
            "welcome": {"next": "profile"},
            "profile": {"next": "preferences"},
            "preferences": {"next": "complete"},
            "complete": {},
        },
    }
    if version is not None:
        config["version"] = version
    return define_flow(config)


def build_branching_flow(flow_id: str = "branching") -> FlowDefinition:
    """
    Factory: welcome -> user_type -> (business | personal) -> setup -> (preferences | complete).

    user_type is context-driven (resolver on ``type``), setup is component-driven.
    """
    return define_flow(
        {
            "id": flow_id,
            "start": "welcome",
            "steps": {
                "welcome": {"next": "user_type"},
                "user_type": {"next": ["business", "personal"]},
                "business": {"next": "setup"},
                "personal": {"next": "setup"},
                "setup": {"next": ["preferences", "complete"]},
                "preferences": {"next": "complete"},
                "complete": {},
            },
        }
    ).with_resolvers(
        lambda steps: {
            "user_type": lambda ctx: steps.business if ctx.get("type") == "business" else steps.personal,
        }
    )


def record_events(flow: FlowInstance, *event_types: EventType) -> List:
    """
    Subscribe to event types and collect every delivered event in order.

    Returns:
        The list that receives the events
    """
    received: List = []
    for event_type in event_types or tuple(EventType):
        flow.subscribe(event_type, received.append)
    return received


class FailingStorage(MemoryStorage):
    """MemoryStorage whose operations raise once ``fail`` is set."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def _check(self):
        if self.fail:
            raise OSError("storage unavailable")

    def get(self, key):
        self._check()
        return super().get(key)

    def set(self, key, value):
        self._check()
        super().set(key, value)

    def remove(self, key):
        self._check()
        super().remove(key)

    def list_keys(self, prefix):
        self._check()
        return super().list_keys(prefix)


# ============================================================
#                   ASSERTION HELPERS
# ============================================================

def assert_at_step(flow: FlowInstance, step_id: str, path: Optional[List[str]] = None):
    """
    Assert the current step and, optionally, the navigation stack.

    Args:
        flow: Flow instance
        step_id: Expected current step
        path: Expected path step ids, bottom first
    """
    assert flow.step_id == step_id, f"Expected step {step_id}, got {flow.step_id}"
    if path is not None:
        actual = [entry.step_id for entry in flow.path]
        assert actual == path, f"Path mismatch: expected {path}, got {actual}"
