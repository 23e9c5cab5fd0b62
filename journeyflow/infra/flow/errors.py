# journeyflow/infra/flow/errors.py
"""
Exception hierarchy for the flow engine.

- ConfigError: malformed flow definition or resolver misbehaviour (fatal)
- NavigationError: invalid navigation request, state left unchanged
- StateError: navigation attempted while the instance is restoring
- PersistenceError: storage or serialization failure, recovered locally
- StaleDataError: persisted record incompatible with the current definition
"""
from __future__ import annotations

from typing import List, Optional


class FlowError(Exception):
    """Base class for every error raised by the flow engine."""


class ConfigError(FlowError):
    """Raised when a flow definition or its runtime configuration is invalid."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        self.problems = problems or []
        if self.problems:
            message = message + "\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class NavigationError(FlowError):
    """Raised when a navigation operation cannot be applied."""


class StateError(NavigationError):
    """Raised when an operation is attempted while the instance is restoring."""


class PersistenceError(FlowError):
    """Raised (and reported) when reading or writing persisted state fails."""

    def __init__(self, message: str, flow_id: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.flow_id = flow_id
        self.key = key


class StaleDataError(PersistenceError):
    """Raised when a persisted record does not match the flow definition."""
