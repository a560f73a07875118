"""
In-memory Event Bus for Domain Events.
Provides a simple publish/subscribe mechanism; a failing handler is logged and
never propagates to the publisher.
"""

import logging
from threading import Lock
from typing import Callable, Dict, List, Type

from fabquote.backoffice.events.domain_events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._lock = Lock()
        self._subscribers: Dict[Type[DomainEvent], List[EventHandler]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribes a handler to an event type. Subscribing to DomainEvent
        receives every event.
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(
            f"Subscribed handler {getattr(handler, '__name__', handler)} to {event_type.__name__}"
        )

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def _handlers_for(self, event: DomainEvent) -> List[EventHandler]:
        with self._lock:
            exact = list(self._subscribers.get(type(event), []))
            generic = [
                handler
                for handler in self._subscribers.get(DomainEvent, [])
                if type(event) is not DomainEvent and handler not in exact
            ]
        return exact + generic

    def publish(self, event: DomainEvent) -> None:
        logger.debug(f"Publishing event: {event.event_type} (ID: {event.event_id})")
        for handler in self._handlers_for(event):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} "
                    f"for {type(event).__name__} failed: {e}",
                    exc_info=True,
                )


# Process-wide bus used by the API and CLI wiring
event_bus = EventBus()
