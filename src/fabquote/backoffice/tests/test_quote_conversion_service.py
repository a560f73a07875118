from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from fabquote.backoffice.events.domain_events import (
    DomainEvent,
    OrderCreatedEvent,
    QuoteConvertedEvent,
)
from fabquote.backoffice.models.attachment import Attachment
from fabquote.backoffice.models.cad_version import CadFileVersion
from fabquote.backoffice.models.conversion import ConversionStatus, EntityKind
from fabquote.backoffice.models.note import Note
from fabquote.backoffice.models.order import (
    Order,
    OrderAttachment,
    OrderLineItem,
    Part,
    PartDrawing,
)
from fabquote.backoffice.models.quote import Quote, QuoteAttachment, QuotePartDrawing, QuoteStatus
from fabquote.backoffice.services.asset_migrator import AssetMigrator
from fabquote.backoffice.services.order_number_service import parse_number
from fabquote.backoffice.services.quote_conversion_service import (
    QuoteConversionResult,
    QuoteConversionService,
    line_items_total,
)
from fabquote.backoffice.tests.fakes import add_cad_versions, add_quote
from fabquote.database import session_scope
from fabquote.exceptions.handlers import (
    NotFoundError,
    PartMigrationError,
    QuoteAlreadyConvertedError,
    QuoteNotConvertibleError,
)

S = ConversionStatus


@pytest.fixture()
def events(bus):
    received = []
    bus.subscribe(DomainEvent, received.append)
    return received


@pytest.fixture()
def service(session_factory, object_store, bus, settings):
    return QuoteConversionService(
        session_factory, object_store=object_store, bus=bus, settings=settings
    )


def _full_quote(session_factory, file_service):
    file_service.put_bytes("quote-parts/qp-a/source/v1/a.step", b"step-a")
    file_service.put_bytes("quote-parts/qp-a/mesh/a.glb", b"mesh-a")
    quote_id = add_quote(
        session_factory,
        status=QuoteStatus.SENT,
        total_price=Decimal("999.00"),
        lead_time="10 days",
        parts=[
            {
                "id": "qp-a",
                "part_name": "Bracket",
                "material": "6061-T6",
                "finish": "Anodized",
                "part_file_url": "quote-parts/qp-a/source/v1/a.step",
                "part_mesh_url": "quote-parts/qp-a/mesh/a.glb",
                "status": S.COMPLETED,
            },
            {
                "id": "qp-b",
                "part_name": "Housing",
                "part_file_url": "quote-parts/qp-b/source/b.step",
                "status": S.FAILED,
                "mesh_conversion_error": "Invalid geometry",
            },
        ],
        line_items=[
            {"part": "qp-a", "quantity": 4, "unit_price": "12.50", "description": "CNC"},
            {"part": "qp-b", "quantity": 2, "unit_price": "7.25"},
            {"name": "Expedite fee", "quantity": 1, "unit_price": "5.00"},
        ],
    )
    add_cad_versions(session_factory, EntityKind.QUOTE_PART, "qp-a", ["a.step"])
    with session_scope(session_factory) as session:
        session.add(Attachment(id="att-1", s3_key="quote-attachments/po.pdf", file_name="po.pdf"))
        session.add(Attachment(id="dwg-1", s3_key="drawings/a.pdf", file_name="a.pdf"))
        session.flush()
        session.add(QuoteAttachment(quote_id=quote_id, attachment_id="att-1"))
        session.add(QuotePartDrawing(quote_part_id="qp-a", attachment_id="dwg-1", version=2))
        session.add(Note(entity_type="quote", entity_id=str(quote_id), content="Rush job"))
        session.add(
            Note(entity_type="quote", entity_id=str(quote_id), content="old", is_archived=True)
        )
    return quote_id


def test_line_items_total_uses_decimal_cents():
    items = [
        type("Item", (), {"unit_price": Decimal("0.10"), "quantity": 3})(),
        type("Item", (), {"unit_price": "19.99", "quantity": 2})(),
    ]
    assert line_items_total(items) == Decimal("40.28")


def test_convert_creates_order_parts_and_history(service, session_factory, file_service, events):
    quote_id = _full_quote(session_factory, file_service)

    result = asyncio.run(service.convert(quote_id, user_id="u-9", user_email="ops@example.com"))

    assert parse_number(result.order_number) is not None
    assert result.total_price == Decimal("69.50")
    assert result.line_item_count == 3
    assert len(result.part_ids) == 2
    assert len(result.warnings) == 1

    with session_factory() as session:
        quote = session.get(Quote, quote_id)
        order = session.get(Order, result.order_id)
        assert quote.converted_to_order_id == order.id
        assert quote.status == QuoteStatus.ACCEPTED.value
        assert quote.converted_at is not None
        assert order.total_price == Decimal("69.50")
        assert order.vendor_pay == Decimal("48.65")
        assert order.source_quote_id == quote_id
        assert order.created_by == "u-9"

        parts = {p.part_name: p for p in session.query(Part).all()}
        bracket, housing = parts["Bracket"], parts["Housing"]
        assert bracket.mesh_conversion_status == "completed"
        assert bracket.part_file_url == f"parts/{bracket.id}/source/v1/a.step"
        assert bracket.part_mesh_url == f"parts/{bracket.id}/mesh/a.glb"
        assert bracket.finishing == "Anodized"
        assert housing.mesh_conversion_status == "failed"
        assert housing.mesh_conversion_error == "Invalid geometry"
        assert housing.part_mesh_url is None
        # copy failed: the part keeps pointing at the quote part's object
        assert housing.part_file_url == "quote-parts/qp-b/source/b.step"

        lines = session.query(OrderLineItem).filter_by(order_id=order.id).all()
        by_part = {line.part_id: line for line in lines}
        assert by_part[bracket.id].quantity == 4
        assert by_part[bracket.id].unit_price == Decimal("12.50")
        assert by_part[None].name == "Expedite fee"

        versions = session.query(CadFileVersion).filter_by(entity_type="part").all()
        assert [(v.entity_id, v.version, v.is_current_version) for v in versions] == [
            (bracket.id, 1, True)
        ]
        assert session.query(PartDrawing).filter_by(part_id=bracket.id).one().version == 2
        assert session.query(OrderAttachment).filter_by(order_id=order.id).count() == 1
        notes = session.query(Note).filter_by(entity_type="order", entity_id=str(order.id)).all()
        assert [n.content for n in notes] == ["Rush job"]

    assert file_service.get_bytes(f"parts/{bracket.id}/mesh/a.glb") == b"mesh-a"
    assert [type(e) for e in events] == [QuoteConvertedEvent, OrderCreatedEvent]
    assert events[0].actor_email == "ops@example.com"
    assert events[1].total_price == "69.50"


@pytest.mark.parametrize(
    "quote_kwargs,reason",
    [
        ({"status": QuoteStatus.DRAFT, "line_items": [{}]}, "invalid_status"),
        ({"line_items": []}, "no_line_items"),
        ({"line_items": [{"quantity": 0}]}, "invalid_quantity"),
        ({"line_items": [{"unit_price": "-1.00"}]}, "invalid_price"),
        ({"line_items": [{"unit_price": "0.00"}]}, "zero_total"),
        (
            {
                "parts": [{"id": "qp1", "part_name": "   "}],
                "line_items": [{"part": "qp1"}],
            },
            "part_missing_name",
        ),
        (
            {
                "parts": [{"id": "qp1"}, {"id": "qp2"}],
                "line_items": [{"part": "qp1"}],
            },
            "orphaned_part",
        ),
    ],
)
def test_preconditions(service, session_factory, quote_kwargs, reason):
    quote_id = add_quote(session_factory, **quote_kwargs)

    with pytest.raises(QuoteNotConvertibleError) as excinfo:
        asyncio.run(service.convert(quote_id))

    assert excinfo.value.reason == reason
    with session_factory() as session:
        assert session.query(Order).count() == 0


def test_invalid_status_message(service, session_factory):
    quote_id = add_quote(session_factory, status=QuoteStatus.REJECTED, line_items=[{}])

    with pytest.raises(QuoteNotConvertibleError) as excinfo:
        asyncio.run(service.convert(quote_id))

    assert excinfo.value.message == "Quote must be in Accepted or Sent status to convert"


@pytest.mark.parametrize(
    "part",
    [
        {"id": "qp1", "status": S.IN_PROGRESS, "part_file_url": "quote-parts/qp1/source/a.step"},
        {"id": "qp1", "status": S.QUEUED, "part_file_url": "quote-parts/qp1/source/a.step"},
        {"id": "qp1", "status": S.PENDING, "part_file_url": "quote-parts/qp1/source/a.step"},
    ],
)
def test_unfinished_conversions_block(service, session_factory, part):
    quote_id = add_quote(session_factory, parts=[part], line_items=[{"part": "qp1"}])

    with pytest.raises(QuoteNotConvertibleError) as excinfo:
        asyncio.run(service.convert(quote_id))

    assert excinfo.value.reason == "conversions_pending"
    assert excinfo.value.details["blocking_parts"] == 1


def test_failed_or_fileless_parts_do_not_block(service, session_factory):
    quote_id = add_quote(
        session_factory,
        parts=[
            {"id": "qp1", "status": S.FAILED, "mesh_conversion_error": "boom"},
            {"id": "qp2", "status": S.PENDING},
            {"id": "qp3", "status": S.SKIPPED, "part_file_url": "quote-parts/qp3/source/a.pdf"},
        ],
        line_items=[{"part": "qp1"}, {"part": "qp2"}, {"part": "qp3"}],
    )

    result = asyncio.run(service.convert(quote_id))

    assert len(result.part_ids) == 3
    assert result.warnings and "failed mesh conversions" in result.warnings[0]


def test_completed_part_without_mesh_becomes_pending(service, session_factory):
    quote_id = add_quote(
        session_factory,
        parts=[{"id": "qp1", "status": S.COMPLETED}],
        line_items=[{"part": "qp1"}],
    )

    result = asyncio.run(service.convert(quote_id))

    with session_factory() as session:
        part = session.get(Part, result.part_ids[0])
        assert part.mesh_conversion_status == "pending"
        assert part.part_mesh_url is None


def test_unknown_and_already_converted_quotes(service, session_factory):
    with pytest.raises(NotFoundError):
        asyncio.run(service.convert(404))

    quote_id = add_quote(session_factory, line_items=[{}])
    asyncio.run(service.convert(quote_id))

    with pytest.raises(QuoteAlreadyConvertedError):
        asyncio.run(service.convert(quote_id))
    with session_factory() as session:
        assert session.query(Order).count() == 1


def test_concurrent_conversion_yields_one_order(session_factory, object_store, bus, settings, events):
    quote_id = add_quote(session_factory, line_items=[{"quantity": 2, "unit_price": "30.00"}])
    rival = QuoteConversionService(
        session_factory, object_store=object_store, bus=bus, settings=settings
    )

    class RacingReserver:
        """Lets a rival conversion commit while we reserve an order number."""

        async def reserve(self, year=None):
            await rival.convert(quote_id)
            return "99Z00001"

    loser = QuoteConversionService(
        session_factory,
        object_store=object_store,
        order_numbers=RacingReserver(),
        bus=bus,
        settings=settings,
    )

    with pytest.raises(QuoteAlreadyConvertedError):
        asyncio.run(loser.convert(quote_id))

    with session_factory() as session:
        orders = session.query(Order).all()
        assert len(orders) == 1
        assert orders[0].order_number != "99Z00001"
        assert session.get(Quote, quote_id).converted_to_order_id == orders[0].id
    assert [type(e) for e in events] == [QuoteConvertedEvent, OrderCreatedEvent]


def test_overlapping_conversions_yield_one_order(session_factory, object_store, file_service, bus, settings):
    file_service.put_bytes("quote-parts/qp1/source/v1/a.step", b"step")
    file_service.put_bytes("quote-parts/qp1/mesh/a.glb", b"mesh")
    quote_id = add_quote(
        session_factory,
        parts=[
            {
                "id": "qp1",
                "part_name": "Bracket",
                "part_file_url": "quote-parts/qp1/source/v1/a.step",
                "part_mesh_url": "quote-parts/qp1/mesh/a.glb",
                "status": S.COMPLETED,
            },
            {"id": "qp2", "part_name": "Cover", "part_file_url": "quote-parts/qp2/source/c.step", "status": S.FAILED},
        ],
        line_items=[{"part": "qp1", "quantity": 2}, {"part": "qp2"}],
    )
    add_cad_versions(session_factory, EntityKind.QUOTE_PART, "qp1", ["a.step"])
    first, second = (
        QuoteConversionService(session_factory, object_store=object_store, bus=bus, settings=settings)
        for _ in range(2)
    )

    async def run():
        return await asyncio.gather(
            first.convert(quote_id), second.convert(quote_id), return_exceptions=True
        )

    results = asyncio.run(run())

    converted = [r for r in results if isinstance(r, QuoteConversionResult)]
    rejected = [r for r in results if isinstance(r, QuoteAlreadyConvertedError)]
    assert len(converted) == 1
    assert len(rejected) == 1
    with session_factory() as session:
        orders = session.query(Order).all()
        assert len(orders) == 1
        assert session.get(Quote, quote_id).converted_to_order_id == orders[0].id
        assert session.query(Part).count() == 2
        assert session.query(OrderLineItem).count() == 2
        assert (
            session.query(CadFileVersion).filter_by(entity_type=EntityKind.PART.value).count() == 1
        )


def test_claim_rejects_conversion_committed_during_asset_copies(
    session_factory, object_store, bus, settings, events
):
    quote_id = add_quote(
        session_factory,
        parts=[{"id": "qp1", "part_name": "Widget"}],
        line_items=[{"part": "qp1"}],
    )
    rival = QuoteConversionService(
        session_factory, object_store=object_store, bus=bus, settings=settings
    )

    class RacingMigrator(AssetMigrator):
        async def migrate_part_assets(self, **kwargs):
            await rival.convert(quote_id)
            return await super().migrate_part_assets(**kwargs)

    class FixedReserver:
        async def reserve(self, year=None):
            return "99Z00001"

    loser = QuoteConversionService(
        session_factory,
        object_store=object_store,
        order_numbers=FixedReserver(),
        migrator=RacingMigrator(object_store),
        bus=bus,
        settings=settings,
    )

    with pytest.raises(QuoteAlreadyConvertedError):
        asyncio.run(loser.convert(quote_id))

    with session_factory() as session:
        orders = session.query(Order).all()
        assert len(orders) == 1
        assert orders[0].order_number != "99Z00001"
        assert session.query(Part).count() == 1
    assert [type(e) for e in events] == [QuoteConvertedEvent, OrderCreatedEvent]


def test_part_failure_rolls_back_everything(session_factory, object_store, bus, settings, events):
    class BrokenMigrator(AssetMigrator):
        async def copy_versions(self, versions, **kwargs):
            raise RuntimeError("disk on fire")

    quote_id = add_quote(
        session_factory,
        parts=[{"id": "qp1", "part_name": "Widget"}],
        line_items=[{"part": "qp1"}],
    )
    service = QuoteConversionService(
        session_factory,
        object_store=object_store,
        migrator=BrokenMigrator(object_store),
        bus=bus,
        settings=settings,
    )

    with pytest.raises(PartMigrationError) as excinfo:
        asyncio.run(service.convert(quote_id))

    assert excinfo.value.message == 'Failed to convert part "Widget": disk on fire'
    with session_factory() as session:
        assert session.query(Order).count() == 0
        assert session.query(Part).count() == 0
        assert session.get(Quote, quote_id).converted_to_order_id is None
    assert events == []
