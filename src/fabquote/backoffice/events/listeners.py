"""
Event listeners that persist domain events as EventLog rows (audit history).
"""

import logging
from typing import Dict, Optional, Tuple

from fabquote.backoffice.events.domain_events import (
    CadMeshDeletedEvent,
    CadRevisionCreatedEvent,
    DomainEvent,
    MeshConversionFinishedEvent,
    OrderCreatedEvent,
    QuoteConvertedEvent,
)
from fabquote.backoffice.events.event_bus import EventBus
from fabquote.backoffice.models.event_log import EventLog
from fabquote.database import SessionFactory, session_scope

logger = logging.getLogger(__name__)


def _describe(event: DomainEvent) -> Tuple[str, str, str, str, Optional[str]]:
    """(entity_type, entity_id, category, title, description) for an event."""
    if isinstance(event, QuoteConvertedEvent):
        return (
            "quote",
            str(event.quote_id),
            "status",
            "Quote Converted to Order",
            f"Quote {event.quote_number} was converted to order {event.order_number}",
        )
    if isinstance(event, OrderCreatedEvent):
        return (
            "order",
            str(event.order_id),
            "system",
            "Order Created",
            f"Order {event.order_number} was created"
            + (f" from quote {event.source_quote_id}" if event.source_quote_id else ""),
        )
    if isinstance(event, MeshConversionFinishedEvent):
        title = "Mesh Conversion Completed" if event.status == "completed" else "Mesh Conversion Failed"
        return (event.entity_kind, event.entity_id, "system", title, event.error)
    if isinstance(event, CadMeshDeletedEvent):
        return (
            event.entity_kind,
            event.entity_id,
            "system",
            "CAD Mesh Deleted",
            f"Mesh removed: {event.reason}",
        )
    if isinstance(event, CadRevisionCreatedEvent):
        verb = "restored" if event.restored else "uploaded"
        return (
            event.entity_kind,
            event.entity_id,
            "document",
            "CAD Revision",
            f"Version {event.version} ({event.file_name}) {verb}",
        )
    return ("system", "-", "system", event.event_type, None)


class EventLogRecorder:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def __call__(self, event: DomainEvent) -> None:
        entity_type, entity_id, category, title, description = _describe(event)
        payload: Dict = event.model_dump(
            mode="json", exclude={"event_id", "timestamp", "actor_id", "actor_email"}
        )
        with session_scope(self._session_factory) as session:
            session.add(
                EventLog(
                    id=event.event_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    event_type=event.event_type,
                    event_category=category,
                    title=title,
                    description=description,
                    event_metadata=payload,
                    user_id=event.actor_id,
                    user_email=event.actor_email,
                    created_at=event.timestamp,
                )
            )
        logger.debug("Recorded event %s for %s %s", event.event_type, entity_type, entity_id)


def register_event_log_listener(bus: EventBus, session_factory: SessionFactory) -> EventLogRecorder:
    recorder = EventLogRecorder(session_factory)
    bus.subscribe(DomainEvent, recorder)
    return recorder
