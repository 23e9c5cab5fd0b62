# journeyflow/infra/flow/flow.py
"""
Flow instance state machine.

This module provides the runtime object driving one run of a flow
definition: it holds the current step, context, history and path, exposes
the navigation operations, notifies observers, and restores/saves its state
through an optional Persister.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from journeyflow.infra.flow.definition import FlowDefinition
from journeyflow.infra.flow.errors import NavigationError, PersistenceError, StaleDataError, StateError
from journeyflow.infra.flow.event_manager import EventDispatcher, EventHandler
from journeyflow.infra.flow.models import (
    DEFAULT_INSTANCE_ID,
    CompleteEvent,
    ContextUpdate,
    ContextUpdateEvent,
    Direction,
    EventType,
    FlowContext,
    FlowEvent,
    FlowState,
    FlowStatus,
    HistoryEntry,
    NavigationAction,
    PathEntry,
    SaveMode,
    StepId,
    StepSpec,
    TransitionEvent,
    utcnow,
)
from journeyflow.infra.flow.navigation import (
    TransitionResolver,
    apply_context_update,
    create_initial_state,
    validate_restored_state,
)
from journeyflow.infra.flow.persister import Persister
from journeyflow.infra.flow.schemas import PersistedFlowState

# Configure logger for flow instances
logger = logging.getLogger(__name__)

DEFAULT_SAVE_DEBOUNCE = 0.3

_NAVIGATION_EVENTS = {
    NavigationAction.NEXT: EventType.NEXT,
    NavigationAction.SKIP: EventType.SKIP,
    NavigationAction.BACK: EventType.BACK,
}


class FlowInstance:
    """
    One independent run of a flow definition.

    Navigation operations are strictly sequential: each one runs to
    completion (merge, transition, dispatch, persistence trigger) under an
    instance-owned re-entrant lock, and state is committed before observers
    run, so a call made from a callback observes the fully-updated state.

    Example:
        ```python
        flow = FlowInstance(
            onboarding,
            persister=persister,
            instance_id="user-42",
            initial_context={"name": ""},
            on_complete=lambda event: print("done", event.context),
        )
        flow.next({"name": "Ada"})
        flow.next("business")      # explicit branch target
        flow.back()
        flow.set_context({"newsletter": True})
        ```
    """

    def __init__(
        self,
        definition: FlowDefinition,
        *,
        persister: Optional[Persister] = None,
        instance_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        initial_context: Optional[Mapping[str, Any]] = None,
        save_mode: Union[SaveMode, str] = SaveMode.ALWAYS,
        save_debounce: float = DEFAULT_SAVE_DEBOUNCE,
        on_persistence_error: Optional[Callable[[PersistenceError], None]] = None,
        on_save: Optional[Callable[[PersistedFlowState], None]] = None,
        on_restore: Optional[Callable[[PersistedFlowState], None]] = None,
        on_next: Optional[EventHandler] = None,
        on_skip: Optional[EventHandler] = None,
        on_back: Optional[EventHandler] = None,
        on_transition: Optional[EventHandler] = None,
        on_complete: Optional[EventHandler] = None,
        on_context_update: Optional[EventHandler] = None,
        dispatcher: Optional[EventDispatcher] = None,
        restore: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize a flow instance.

        Args:
            definition: The flow to run
            persister: Optional persister for restoring and saving state
            instance_id: Identity of this run (DEFAULT_INSTANCE_ID when omitted)
            variant_id: Variant identity (defaults to the definition's)
            initial_context: Context of a fresh instance
            save_mode: When state is written (always, navigation, debounced, manual)
            save_debounce: Coalescing window in seconds for the debounced mode
            on_persistence_error: Called with every persistence failure
            on_save: Called with each written record
            on_restore: Called with the record adopted on restore
            on_next: Observer of forward navigation by next()
            on_skip: Observer of forward navigation by skip()
            on_back: Observer of backward navigation
            on_transition: Observer of every step change
            on_complete: Observer of the arrival on a terminal step
            on_context_update: Observer of context changes
            dispatcher: Shared dispatcher (a private one is created otherwise)
            restore: Load persisted state now; when False the instance stays
                in the restoring state until restore() or restore_async()
            clock: Time source
        """
        self.definition = definition
        self._persister = persister
        self._instance_id = instance_id or DEFAULT_INSTANCE_ID
        self._variant_id = variant_id if variant_id is not None else definition.variant_id
        self._initial_context = dict(initial_context or {})
        self.save_mode = SaveMode(save_mode)
        self.save_debounce = save_debounce
        self._on_persistence_error = on_persistence_error
        self._on_save = on_save
        self._on_restore = on_restore
        self._clock = clock

        # Execution management
        self._lock = threading.RLock()
        self._resolver = TransitionResolver(definition)
        self._events = dispatcher or EventDispatcher()
        self._pending_save: Optional[asyncio.TimerHandle] = None

        for event_type, handler in (
            (EventType.NEXT, on_next),
            (EventType.SKIP, on_skip),
            (EventType.BACK, on_back),
            (EventType.TRANSITION, on_transition),
            (EventType.COMPLETE, on_complete),
            (EventType.CONTEXT_UPDATE, on_context_update),
        ):
            if handler is not None:
                self._events.subscribe(event_type, handler)

        self._state = create_initial_state(definition, self._initial_context, clock())
        self._is_restoring = True
        if restore:
            self.restore()

    # ================================================================
    #                   READ-ONLY STATE
    # ================================================================

    @property
    def flow_id(self) -> str:
        return self.definition.id

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def variant_id(self) -> Optional[str]:
        return self._variant_id

    @property
    def step_id(self) -> StepId:
        return self._state.step_id

    @property
    def step(self) -> StepSpec:
        return self.definition.step(self._state.step_id)

    @property
    def next_steps(self) -> Tuple[StepId, ...]:
        """Destinations allowed from the current step."""
        return self.definition.next_targets(self._state.step_id)

    @property
    def context(self) -> FlowContext:
        return dict(self._state.context)

    @property
    def status(self) -> FlowStatus:
        return self._state.status

    @property
    def is_complete(self) -> bool:
        return self._state.status == FlowStatus.COMPLETED

    @property
    def history(self) -> List[HistoryEntry]:
        return self.get_state().history

    @property
    def path(self) -> List[PathEntry]:
        return self.get_state().path

    @property
    def started_at(self) -> datetime:
        return self._state.started_at

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._state.completed_at

    @property
    def is_restoring(self) -> bool:
        return self._is_restoring

    @property
    def can_go_back(self) -> bool:
        return self._state.status == FlowStatus.ACTIVE and len(self._state.path) > 1

    @property
    def has_pending_save(self) -> bool:
        return self._pending_save is not None

    def get_state(self) -> FlowState:
        """Snapshot of the current state, detached from the instance."""
        with self._lock:
            return self._state.copy()

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """
        Register an additional observer.

        Args:
            event_type: Type of event to observe
            handler: Callable receiving the event

        Returns:
            A function removing the subscription
        """
        return self._events.subscribe(event_type, handler)

    # ================================================================
    #                   RESTORATION
    # ================================================================

    def restore(self) -> bool:
        """
        Load persisted state and adopt it when it is valid.

        Returns:
            True if a persisted record was adopted
        """
        with self._lock:
            self._is_restoring = True
            try:
                return self._adopt(self._load_record())
            finally:
                self._is_restoring = False

    async def restore_async(self) -> bool:
        """
        Load persisted state in a worker thread and adopt it when it is valid.

        ``is_restoring`` stays True for the whole load, so other tasks
        observe the instance as unavailable until it completes.

        Returns:
            True if a persisted record was adopted
        """
        self._is_restoring = True
        try:
            record = await asyncio.to_thread(self._load_record)
            with self._lock:
                return self._adopt(record)
        finally:
            self._is_restoring = False

    def _load_record(self) -> Optional[PersistedFlowState]:
        if self._persister is None:
            return None
        return self._persister.load(
            self.flow_id,
            instance_id=self._instance_id,
            variant_id=self._variant_id,
            version=self.definition.version,
            migrate=self.definition.migrate,
            on_error=self._report_persistence_error,
        )

    def _adopt(self, record: Optional[PersistedFlowState]) -> bool:
        if record is None:
            return False

        state = record.to_flow_state()
        problems = validate_restored_state(state, self.definition)
        if problems:
            error = StaleDataError(
                f"Persisted state of flow '{self.flow_id}' instance '{self._instance_id}' "
                f"does not match the definition: {'; '.join(problems)}",
                flow_id=self.flow_id,
            )
            logger.warning(str(error))
            self._report_persistence_error(error)
            return False

        self._state = state
        logger.debug(f"Restored flow '{self.flow_id}' instance '{self._instance_id}' at step '{state.step_id}'")
        self._call_safely(self._on_restore, record)
        return True

    # ================================================================
    #                   NAVIGATION
    # ================================================================

    def next(
        self,
        target_or_update: Union[StepId, ContextUpdate, None] = None,
        update: Optional[ContextUpdate] = None,
    ) -> None:
        """
        Merge a context update and move forward.

        Args:
            target_or_update: Either an explicit destination (str) for
                component-driven branching, or a context update
            update: Context update when the first argument is a target

        Raises:
            StateError: If the instance is restoring
            NavigationError: If the step is terminal, the flow is complete,
                the target is not allowed, or a branch has no way to resolve
            ConfigError: If a resolver returns a step outside its branch
        """
        self._move_forward(NavigationAction.NEXT, target_or_update, update)

    def skip(
        self,
        target_or_update: Union[StepId, ContextUpdate, None] = None,
        update: Optional[ContextUpdate] = None,
    ) -> None:
        """
        Same as next(), but the step is recorded as skipped.

        Raises:
            StateError: If the instance is restoring
            NavigationError: See next()
            ConfigError: See next()
        """
        self._move_forward(NavigationAction.SKIP, target_or_update, update)

    def back(self) -> None:
        """
        Return to the previous step of the path.

        No-op on the start step and on a completed flow. The context is kept.

        Raises:
            StateError: If the instance is restoring
        """
        with self._lock:
            self._ensure_ready("back")
            state = self._state
            if state.status == FlowStatus.COMPLETED or len(state.path) <= 1:
                logger.debug(f"back() ignored for flow '{self.flow_id}' at step '{state.step_id}'")
                return

            now = self._clock()
            from_step = state.step_id
            state.path.pop()
            to_step = state.path[-1].step_id

            self._close_visit(now, NavigationAction.BACK)
            state.history.append(HistoryEntry(step_id=to_step, started_at=now))
            state.step_id = to_step

            logger.debug(f"Flow '{self.flow_id}' instance '{self._instance_id}': {from_step} <- {to_step}")
            context = dict(state.context)
            self._events.dispatch_all(
                self._transition_events(NavigationAction.BACK, from_step, to_step, context, context)
            )
            self._persist(navigation=True)

    def set_context(self, update: ContextUpdate) -> None:
        """
        Merge a context update without moving.

        Args:
            update: Patch mapping (shallow merge) or updater function

        Raises:
            StateError: If the instance is restoring
        """
        with self._lock:
            self._ensure_ready("set_context")
            old_context = self._state.context
            new_context = apply_context_update(old_context, update)
            self._state.context = new_context

            if new_context != old_context:
                self._events.dispatch(self._context_event(old_context, new_context))
            self._persist(navigation=False)

    def reset(self) -> None:
        """
        Discard all progress and start over.

        Cancels a pending debounced write and removes the persisted record,
        so a restart never leaves a stale record behind.

        Raises:
            StateError: If the instance is restoring
        """
        with self._lock:
            self._ensure_ready("reset")
            self._cancel_pending_save()
            if self._persister is not None:
                self._persister.remove(
                    self.flow_id,
                    instance_id=self._instance_id,
                    variant_id=self._variant_id,
                    on_error=self._report_persistence_error,
                )
            self._state = create_initial_state(self.definition, self._initial_context, self._clock())
            logger.info(f"Flow '{self.flow_id}' instance '{self._instance_id}' reset")

    def _move_forward(
        self,
        action: NavigationAction,
        target_or_update: Union[StepId, ContextUpdate, None],
        update: Optional[ContextUpdate],
    ) -> None:
        with self._lock:
            self._ensure_ready(action.value)
            target, patch = _split_navigation_args(target_or_update, update)
            state = self._state

            if state.status == FlowStatus.COMPLETED:
                raise NavigationError(f"Flow '{self.flow_id}' is complete; call reset() to start over")

            # Everything that can fail runs before the first mutation
            old_context = state.context
            new_context = apply_context_update(old_context, patch)
            from_step = state.step_id
            to_step = self._resolver.resolve(from_step, new_context, target)

            state.context = new_context
            events: List[FlowEvent] = []

            if to_step is None:
                logger.debug(f"Resolver kept flow '{self.flow_id}' on step '{from_step}'")
            else:
                now = self._clock()
                self._close_visit(now, action)
                state.history.append(HistoryEntry(step_id=to_step, started_at=now))
                state.path.append(PathEntry(step_id=to_step, timestamp=now))
                state.step_id = to_step
                if self.definition.is_terminal(to_step):
                    state.status = FlowStatus.COMPLETED
                    state.completed_at = now

                logger.debug(f"Flow '{self.flow_id}' instance '{self._instance_id}': {from_step} -> {to_step}")
                events.extend(
                    self._transition_events(action, from_step, to_step, old_context, new_context)
                )

            if new_context != old_context:
                events.append(self._context_event(old_context, new_context))
            if state.status == FlowStatus.COMPLETED and to_step is not None:
                logger.info(f"Flow '{self.flow_id}' instance '{self._instance_id}' completed")
                events.append(
                    CompleteEvent(flow_id=self.flow_id, instance_id=self._instance_id, context=dict(new_context))
                )

            self._events.dispatch_all(events)
            self._persist(navigation=True)

    def _close_visit(self, now: datetime, action: NavigationAction) -> None:
        current = self._state.history[-1]
        current.completed_at = now
        current.action = action

    def _ensure_ready(self, operation: str) -> None:
        if self._is_restoring:
            raise StateError(f"Cannot {operation}() while flow '{self.flow_id}' is restoring")

    # ================================================================
    #                   EVENTS
    # ================================================================

    def _transition_events(
        self,
        action: NavigationAction,
        from_step: StepId,
        to_step: StepId,
        old_context: FlowContext,
        new_context: FlowContext,
    ) -> List[TransitionEvent]:
        direction = Direction.BACKWARD if action == NavigationAction.BACK else Direction.FORWARD
        return [
            TransitionEvent(
                event_type=event_type,
                flow_id=self.flow_id,
                instance_id=self._instance_id,
                from_step=from_step,
                to_step=to_step,
                direction=direction,
                old_context=dict(old_context),
                new_context=dict(new_context),
            )
            for event_type in (_NAVIGATION_EVENTS[action], EventType.TRANSITION)
        ]

    def _context_event(self, old_context: FlowContext, new_context: FlowContext) -> ContextUpdateEvent:
        return ContextUpdateEvent(
            flow_id=self.flow_id,
            instance_id=self._instance_id,
            old_context=dict(old_context),
            new_context=dict(new_context),
        )

    # ================================================================
    #                   PERSISTENCE
    # ================================================================

    def save(self) -> Optional[PersistedFlowState]:
        """
        Write the current state now.

        Supersedes any pending debounced write. This is the only write
        performed in manual save mode.

        Returns:
            The written record, or None without persister or on failure

        Raises:
            StateError: If the instance is restoring
        """
        with self._lock:
            self._ensure_ready("save")
            self._cancel_pending_save()
            if self._persister is None:
                return None
            record = self._persister.save(
                self.flow_id,
                self._state,
                instance_id=self._instance_id,
                variant_id=self._variant_id,
                version=self.definition.version,
                on_error=self._report_persistence_error,
            )
            if record is not None:
                self._call_safely(self._on_save, record)
            return record

    def flush(self) -> bool:
        """
        Run a pending debounced write immediately.

        Returns:
            True if a write was pending
        """
        with self._lock:
            if self._pending_save is None:
                return False
            self.save()
            return True

    def remove(self) -> None:
        """
        Cancel a pending write and delete the persisted record.

        The in-memory state is kept.
        """
        with self._lock:
            self._cancel_pending_save()
            if self._persister is not None:
                self._persister.remove(
                    self.flow_id,
                    instance_id=self._instance_id,
                    variant_id=self._variant_id,
                    on_error=self._report_persistence_error,
                )

    def close(self) -> None:
        """Flush a pending debounced write."""
        self.flush()

    def _persist(self, navigation: bool) -> None:
        if self._persister is None or self.save_mode == SaveMode.MANUAL:
            return
        if self.save_mode == SaveMode.NAVIGATION and not navigation:
            return
        if self.save_mode == SaveMode.DEBOUNCED and self.save_debounce > 0:
            self._schedule_save()
            return
        self.save()

    def _schedule_save(self) -> None:
        self._cancel_pending_save()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop for flow '{self.flow_id}'; saving immediately")
            self.save()
            return
        self._pending_save = loop.call_later(self.save_debounce, self._run_pending_save)

    def _run_pending_save(self) -> None:
        with self._lock:
            self._pending_save = None
            if self._is_restoring:
                return
            self.save()

    def _cancel_pending_save(self) -> None:
        if self._pending_save is not None:
            self._pending_save.cancel()
            self._pending_save = None

    def _report_persistence_error(self, error: PersistenceError) -> None:
        self._call_safely(self._on_persistence_error, error)

    @staticmethod
    def _call_safely(callback: Optional[Callable[[Any], None]], argument: Any) -> None:
        if callback is None:
            return
        try:
            callback(argument)
        except Exception:
            logger.exception(f"Callback {getattr(callback, '__name__', callback)!r} raised")

    def __repr__(self) -> str:
        return (
            f"FlowInstance(flow_id={self.flow_id!r}, instance_id={self._instance_id!r}, "
            f"step_id={self._state.step_id!r}, status={self._state.status.value!r})"
        )


def _split_navigation_args(
    target_or_update: Union[StepId, ContextUpdate, None],
    update: Optional[ContextUpdate],
) -> Tuple[Optional[StepId], Optional[ContextUpdate]]:
    if isinstance(target_or_update, str):
        return target_or_update, update
    if target_or_update is None:
        return None, update
    if update is not None:
        raise TypeError("A context update was given twice; pass a target as first argument to use both")
    return None, target_or_update
