from unittest.mock import MagicMock

from sqlalchemy import text

from fabquote.backoffice.events.domain_events import (
    DomainEvent,
    MeshConversionFinishedEvent,
    OrderCreatedEvent,
    QuoteConvertedEvent,
)
from fabquote.backoffice.events.event_bus import EventBus
from fabquote.backoffice.events.listeners import register_event_log_listener
from fabquote.backoffice.events.transactional import enqueue_event
from fabquote.backoffice.models.event_log import EventLog


def _order_event(**kwargs):
    return OrderCreatedEvent(order_id=3, order_number="26Z00003", total_price="10.00", **kwargs)


def test_bus_dispatches_exact_and_generic_handlers():
    bus = EventBus()
    exact, generic = MagicMock(), MagicMock()
    bus.subscribe(OrderCreatedEvent, exact)
    bus.subscribe(DomainEvent, generic)

    event = _order_event()
    bus.publish(event)
    bus.publish(
        MeshConversionFinishedEvent(entity_kind="part", entity_id="p1", status="completed")
    )

    exact.assert_called_once_with(event)
    assert generic.call_count == 2


def test_failing_handler_does_not_reach_publisher():
    bus = EventBus()
    after = MagicMock()
    bus.subscribe(OrderCreatedEvent, MagicMock(side_effect=RuntimeError("listener down")))
    bus.subscribe(OrderCreatedEvent, after)

    bus.publish(_order_event())

    after.assert_called_once()


def test_enqueued_events_publish_only_on_commit(session_factory):
    bus = EventBus()
    handler = MagicMock()
    bus.subscribe(DomainEvent, handler)

    session = session_factory()
    try:
        session.execute(text("SELECT 1"))
        enqueue_event(session, _order_event(), bus)
        session.rollback()
        handler.assert_not_called()

        session.execute(text("SELECT 1"))
        enqueue_event(session, _order_event(), bus)
        handler.assert_not_called()
        session.commit()
        handler.assert_called_once()
    finally:
        session.close()


def test_event_log_listener_records_audit_rows(session_factory):
    bus = EventBus()
    register_event_log_listener(bus, session_factory)

    bus.publish(
        QuoteConvertedEvent(
            quote_id=12,
            quote_number="Q-12",
            order_id=3,
            order_number="26Z00003",
            part_count=2,
            actor_id="u-1",
            actor_email="ops@example.com",
        )
    )

    with session_factory() as session:
        row = session.query(EventLog).one()
    assert row.entity_type == "quote"
    assert row.entity_id == "12"
    assert row.event_type == "quote_converted"
    assert row.title == "Quote Converted to Order"
    assert row.description == "Quote Q-12 was converted to order 26Z00003"
    assert row.event_metadata["order_number"] == "26Z00003"
    assert row.user_email == "ops@example.com"
