from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from journeyflow.application.flow_registry import FlowRegistry
from journeyflow.infra.flow import (
    ConfigError,
    FlowDefinition,
    FlowInstance,
    NavigationError,
    PersistenceError,
    Persister,
    PersistedFlowState,
    StaleDataError,
)

flow_router = APIRouter(prefix="/flows", tags=["Flows"])


class NavigationRequest(BaseModel):
    """Request schema for next/skip."""
    target: Optional[str] = Field(default=None, description="Explicit destination of a component-driven branch")
    context: Optional[Dict[str, Any]] = Field(default=None, description="Patch shallow-merged into the context")


class ContextRequest(BaseModel):
    """Request schema for a context update without navigation."""
    context: Dict[str, Any] = Field(..., description="Patch shallow-merged into the context")


class InstanceState(PersistedFlowState):
    """Response schema: the persisted projection plus navigation hints."""
    flow_id: str
    next_steps: List[str] = Field(default_factory=list)
    can_go_back: bool = False


class FlowSummary(BaseModel):
    id: str
    variant_id: Optional[str] = None
    version: Optional[str] = None
    start: str
    steps: Dict[str, Any]


# ---------- Dependencies ----------

def get_persister(request: Request) -> Persister:
    return request.app.state.persister


def get_registry(request: Request) -> FlowRegistry:
    return request.app.state.registry


def _definition(registry: FlowRegistry, flow_id: str, variant: Optional[str]) -> FlowDefinition:
    try:
        return registry.get(flow_id, variant)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0])


class _InstanceSession:
    """Restores one instance for the duration of a request and collects persistence failures."""

    def __init__(self, definition: FlowDefinition, persister: Persister, instance_id: str):
        self.errors: List[PersistenceError] = []
        self.flow = FlowInstance(
            definition,
            persister=persister,
            instance_id=instance_id,
            on_persistence_error=self._collect,
        )

    def _collect(self, error: PersistenceError) -> None:
        if not isinstance(error, StaleDataError):
            self.errors.append(error)

    def run(self, operation, *args) -> InstanceState:
        try:
            operation(*args)
        except NavigationError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ConfigError as e:
            raise HTTPException(status_code=500, detail=str(e))
        if self.errors:
            raise HTTPException(status_code=503, detail=str(self.errors[-1]))
        return self.state()

    def state(self) -> InstanceState:
        flow = self.flow
        record = PersistedFlowState.from_flow_state(
            flow.get_state(),
            version=flow.definition.version,
            instance_id=flow.instance_id,
            variant_id=flow.variant_id,
        )
        return InstanceState(
            **record.model_dump(),
            flow_id=flow.flow_id,
            next_steps=list(flow.next_steps),
            can_go_back=flow.can_go_back,
        )


def _check_instance_id(persister: Persister, definition: FlowDefinition, instance_id: str) -> None:
    try:
        persister.key_formatter.format(definition.id, instance_id, definition.variant_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _session(flow_id, instance_id, variant, persister, registry) -> _InstanceSession:
    definition = _definition(registry, flow_id, variant)
    _check_instance_id(persister, definition, instance_id)
    return _InstanceSession(definition, persister, instance_id)


# ---------- Definitions ----------

@flow_router.get("/", summary="Get all flows", response_model=List[FlowSummary])
def get_all(registry: FlowRegistry = Depends(get_registry)):
    """List every registered flow definition, one entry per variant."""
    return [FlowSummary(**definition.to_config()) for definition in registry.definitions()]


@flow_router.get("/{flow_id}", summary="Get a flow", response_model=FlowSummary)
def get_flow(flow_id: str, variant: Optional[str] = None, registry: FlowRegistry = Depends(get_registry)):
    return FlowSummary(**_definition(registry, flow_id, variant).to_config())


# ---------- Instances ----------

@flow_router.get("/{flow_id}/instances", summary="Get all instances of a flow")
def get_instances(
    flow_id: str,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    """
    List the persisted instances of a flow.

    Returns:
        One entry per instance with its current step, status and last save time
    """
    if flow_id not in registry:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    return [
        {
            "instance_id": record.instance_id,
            "variant_id": record.variant_id,
            "step_id": record.state.step_id,
            "status": record.state.status,
            "saved_at": record.state.saved_at,
        }
        for record in persister.list(flow_id)
    ]


@flow_router.delete("/{flow_id}/instances", summary="Delete all instances of a flow", status_code=status.HTTP_204_NO_CONTENT)
def delete_instances(
    flow_id: str,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    if flow_id not in registry:
        raise HTTPException(status_code=404, detail=f"Flow '{flow_id}' not found")
    persister.remove_flow(flow_id)


@flow_router.get("/{flow_id}/instances/{instance_id}", summary="Get an instance", response_model=InstanceState)
def get_instance(
    flow_id: str,
    instance_id: str,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    """Current state of an instance; an unknown instance is returned fresh and not saved."""
    return _session(flow_id, instance_id, variant, persister, registry).state()


@flow_router.post("/{flow_id}/instances/{instance_id}/next", summary="Move forward", response_model=InstanceState)
def next_step(
    flow_id: str,
    instance_id: str,
    navigation: NavigationRequest,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    """
    Merge the context patch and move to the next step.

    Raises:
        HTTPException: 404 for an unknown flow, 409 if the navigation is not
            allowed from the current step
    """
    session = _session(flow_id, instance_id, variant, persister, registry)
    return session.run(session.flow.next, navigation.target, navigation.context)


@flow_router.post("/{flow_id}/instances/{instance_id}/skip", summary="Skip a step", response_model=InstanceState)
def skip_step(
    flow_id: str,
    instance_id: str,
    navigation: NavigationRequest,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    session = _session(flow_id, instance_id, variant, persister, registry)
    return session.run(session.flow.skip, navigation.target, navigation.context)


@flow_router.post("/{flow_id}/instances/{instance_id}/back", summary="Move back", response_model=InstanceState)
def back_step(
    flow_id: str,
    instance_id: str,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    session = _session(flow_id, instance_id, variant, persister, registry)
    return session.run(session.flow.back)


@flow_router.patch("/{flow_id}/instances/{instance_id}/context", summary="Update the context", response_model=InstanceState)
def update_context(
    flow_id: str,
    instance_id: str,
    request: ContextRequest,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    session = _session(flow_id, instance_id, variant, persister, registry)
    return session.run(session.flow.set_context, request.context)


@flow_router.post("/{flow_id}/instances/{instance_id}/reset", summary="Reset an instance", response_model=InstanceState)
def reset_instance(
    flow_id: str,
    instance_id: str,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    session = _session(flow_id, instance_id, variant, persister, registry)
    return session.run(session.flow.reset)


@flow_router.delete(
    "/{flow_id}/instances/{instance_id}",
    summary="Delete an instance",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_instance(
    flow_id: str,
    instance_id: str,
    variant: Optional[str] = None,
    persister: Persister = Depends(get_persister),
    registry: FlowRegistry = Depends(get_registry),
):
    definition = _definition(registry, flow_id, variant)
    _check_instance_id(persister, definition, instance_id)
    persister.remove(flow_id, instance_id=instance_id, variant_id=definition.variant_id)
