# journeyflow/infra/flow/schemas.py
"""
Strongly-typed pydantic models for persisted flow state.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from journeyflow.infra.flow.models import FlowState, FlowStatus, HistoryEntry, PathEntry


class PersistedFlowState(BaseModel):
    """
    Durable projection of a flow instance.

    Attributes:
        step_id: Current step
        context: Accumulated user data (must be JSON-serializable)
        path: Navigation stack
        history: Visit log
        status: Instance status
        started_at: When the instance started
        completed_at: When the instance completed
        saved_at: When the record was written (drives TTL expiry)
        version: Flow schema version the record was written with
        instance_id: Instance identity
        variant_id: Variant identity
    """
    model_config = ConfigDict(extra="ignore")

    step_id: str
    context: Dict[str, Any] = Field(default_factory=dict)
    path: List[PathEntry] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    status: FlowStatus = FlowStatus.ACTIVE
    started_at: datetime
    completed_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None
    version: Optional[str] = None
    instance_id: Optional[str] = None
    variant_id: Optional[str] = None

    @classmethod
    def from_flow_state(cls, state: FlowState, **meta: Any) -> PersistedFlowState:
        """
        Project an in-memory state into a persistable record.

        Args:
            state: Live or snapshot state
            **meta: saved_at, version, instance_id, variant_id

        Returns:
            A record detached from the given state
        """
        snapshot = state.copy()
        return cls(
            step_id=snapshot.step_id,
            context=snapshot.context,
            path=snapshot.path,
            history=snapshot.history,
            status=snapshot.status,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            **meta,
        )

    def to_flow_state(self) -> FlowState:
        """Rebuild an in-memory state detached from this record."""
        return FlowState(
            step_id=self.step_id,
            context=copy.deepcopy(self.context),
            status=self.status,
            history=copy.deepcopy(self.history),
            path=copy.deepcopy(self.path),
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


@dataclass(frozen=True)
class FlowInstanceRecord:
    """
    One persisted instance of a flow, as returned by Persister.list().

    Attributes:
        instance_id: Instance identity (DEFAULT_INSTANCE_ID for the shared instance)
        variant_id: Variant the record was written by
        key: Storage key of the record
        state: Decoded record
    """
    instance_id: str
    variant_id: Optional[str]
    key: str
    state: PersistedFlowState
