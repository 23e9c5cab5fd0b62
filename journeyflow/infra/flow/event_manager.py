# journeyflow/infra/flow/event_manager.py
"""
Event management for flow instances.

This module fans lifecycle notifications (forward and backward navigation,
transitions, completion, context updates) out to external observers. Dispatch
is synchronous and ordered, and observers can never affect engine state: a
failing handler is logged and skipped.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List

from journeyflow.infra.flow.models import EventType, FlowEvent

# Configure logger for event dispatch
logger = logging.getLogger(__name__)

EventHandler = Callable[[FlowEvent], None]


class EventDispatcher:
    """
    Registry of observers per event type.

    Handlers run in subscription order on the caller's thread.
    """

    def __init__(self):
        """Initialize the dispatcher with no subscribers."""
        self._handlers: Dict[EventType, List[EventHandler]] = {}

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler for an event type.

        Args:
            event_type: Type of event to observe
            handler: Callable receiving the event

        Returns:
            A function removing the subscription
        """
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def has_subscribers(self, event_type: EventType) -> bool:
        return bool(self._handlers.get(event_type))

    def dispatch(self, event: FlowEvent) -> None:
        """
        Deliver an event to every handler of its type.

        Args:
            event: Event to deliver
        """
        for handler in list(self._handlers.get(event.event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Observer {getattr(handler, '__name__', handler)!r} failed on {event.event_type.value} "
                    f"for flow '{event.flow_id}' instance '{event.instance_id}'"
                )

    def dispatch_all(self, events: List[FlowEvent]) -> None:
        """
        Deliver several events in order.

        Args:
            events: Events to deliver
        """
        for event in events:
            self.dispatch(event)

    def clear(self) -> None:
        """Remove every subscription."""
        self._handlers.clear()
