"""
Quote -> Order conversion.

Validates a quote and reserves an order number. Object-store assets (CAD,
mesh, thumbnail, CAD history) are copied to order-side keys before any write.
One transaction, run off the event loop, then creates the order, claims the
quote with a compare-and-swap on quotes.converted_to_order_id, and inserts the
parts, drawings, line items, attachments and notes. Audit events are published
only after commit. Objects copied for a conversion that later fails stay behind.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from fabquote.backoffice.events.domain_events import OrderCreatedEvent, QuoteConvertedEvent
from fabquote.backoffice.events.event_bus import EventBus, event_bus
from fabquote.backoffice.events.transactional import enqueue_event
from fabquote.backoffice.models.cad_version import CadFileVersion
from fabquote.backoffice.models.conversion import (
    ACTIVE_CONVERSION_STATUSES,
    ConversionStatus,
    EntityKind,
)
from fabquote.backoffice.models.note import Note
from fabquote.backoffice.models.order import (
    Order,
    OrderAttachment,
    OrderLineItem,
    OrderStatus,
    Part,
    PartDrawing,
)
from fabquote.backoffice.models.quote import (
    CONVERTIBLE_QUOTE_STATUSES,
    Quote,
    QuoteAttachment,
    QuoteLineItem,
    QuotePart,
    QuotePartDrawing,
    QuoteStatus,
)
from fabquote.backoffice.services.asset_migrator import AssetMigrator, MigratedAssets, list_versions
from fabquote.backoffice.services.file_service import ObjectStore
from fabquote.backoffice.services.order_number_service import OrderNumberService
from fabquote.config import get_settings
from fabquote.config.settings import Settings
from fabquote.database import SessionFactory, session_scope
from fabquote.exceptions.handlers import (
    NotFoundError,
    PartMigrationError,
    QuoteAlreadyConvertedError,
    QuoteNotConvertibleError,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_items_total(line_items: Sequence[QuoteLineItem]) -> Decimal:
    return sum(
        (_money(item.unit_price) * int(item.quantity or 0) for item in line_items),
        Decimal("0.00"),
    ).quantize(CENTS, rounding=ROUND_HALF_UP)


def _part_label(part: QuotePart) -> str:
    return (part.part_name or "").strip() or part.part_number or part.id


def _blocks_conversion(part: QuotePart) -> bool:
    status = part.mesh_conversion_status
    if status in ACTIVE_CONVERSION_STATUSES:
        return True
    return status == ConversionStatus.PENDING.value and bool(part.part_file_url)


@dataclass
class QuoteConversionResult:
    quote_id: int
    order_id: int
    order_number: str
    total_price: Decimal
    part_ids: List[str] = field(default_factory=list)
    line_item_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "quote_id": self.quote_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "total_price": str(self.total_price),
            "part_ids": list(self.part_ids),
            "line_item_count": self.line_item_count,
            "warnings": list(self.warnings),
        }


@dataclass
class _PartPlan:
    """One quote part as read before any write, plus its copied assets."""

    quote_part: QuotePart
    line_items: List[QuoteLineItem]
    versions: List[CadFileVersion]
    current_version: int = 1
    part_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    assets: MigratedAssets = field(default_factory=MigratedAssets)
    version_rows: List[CadFileVersion] = field(default_factory=list)

    @property
    def label(self) -> str:
        return _part_label(self.quote_part)

    @property
    def status(self) -> str:
        status = self.quote_part.mesh_conversion_status or ConversionStatus.PENDING.value
        # a completed part whose mesh went missing has to be converted again
        if status == ConversionStatus.COMPLETED.value and not self.quote_part.part_mesh_url:
            return ConversionStatus.PENDING.value
        return status

    @property
    def mesh_ref(self) -> Optional[str]:
        if self.quote_part.mesh_conversion_status == ConversionStatus.COMPLETED.value:
            return self.quote_part.part_mesh_url
        return None


@dataclass
class _ConversionPlan:
    quote: Quote
    line_items: List[QuoteLineItem]
    parts: List[_PartPlan]
    warnings: List[str]



class QuoteConversionService:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        object_store: ObjectStore,
        order_numbers: Optional[OrderNumberService] = None,
        migrator: Optional[AssetMigrator] = None,
        bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self.settings = settings or get_settings()
        self.order_numbers = order_numbers or OrderNumberService(session_factory)
        self.migrator = migrator or AssetMigrator(object_store)
        self.bus = bus or event_bus

    def check_convertible(self, quote: Quote) -> List[str]:
        """
        Raise QuoteNotConvertibleError (or QuoteAlreadyConvertedError) when the
        quote cannot become an order. Returns non-blocking warnings.
        """
        if quote.status not in CONVERTIBLE_QUOTE_STATUSES:
            raise QuoteNotConvertibleError(
                "Quote must be in Accepted or Sent status to convert",
                reason="invalid_status",
                status=quote.status,
            )
        if quote.converted_to_order_id is not None:
            raise QuoteAlreadyConvertedError(quote.id, quote.converted_to_order_id)

        line_items = list(quote.line_items)
        if not line_items:
            raise QuoteNotConvertibleError(
                "Cannot convert quote with no line items", reason="no_line_items"
            )
        for item in line_items:
            label = item.name or f"#{item.id}"
            if item.quantity is None or int(item.quantity) <= 0:
                raise QuoteNotConvertibleError(
                    f"Line item {label} has invalid quantity: {item.quantity}",
                    reason="invalid_quantity",
                    line_item_id=item.id,
                )
            if item.unit_price is None or _money(item.unit_price) < 0:
                raise QuoteNotConvertibleError(
                    f"Line item {label} has invalid price: {item.unit_price}",
                    reason="invalid_price",
                    line_item_id=item.id,
                )
        if line_items_total(line_items) <= 0:
            raise QuoteNotConvertibleError(
                "Cannot convert quote with $0 total", reason="zero_total"
            )

        parts = list(quote.parts)
        blocking = [part for part in parts if _blocks_conversion(part)]
        if blocking:
            raise QuoteNotConvertibleError(
                f"Cannot convert quote while {len(blocking)} part(s) have pending mesh "
                "conversions. Please wait for conversions to complete or fail.",
                reason="conversions_pending",
                blocking_parts=len(blocking),
                blocking_part_ids=[part.id for part in blocking],
            )

        warnings: List[str] = []
        failed = [part for part in parts if part.mesh_conversion_status == ConversionStatus.FAILED.value]
        if failed:
            message = (
                f"{len(failed)} part(s) have failed mesh conversions; "
                "converting without 3D previews"
            )
            logger.warning("Quote %s: %s", quote.quote_number, message)
            warnings.append(message)

        linked_part_ids = {item.quote_part_id for item in line_items if item.quote_part_id}
        for part in parts:
            if not (part.part_name or "").strip():
                raise QuoteNotConvertibleError(
                    f"Quote part {part.part_number or part.id} is missing a name",
                    reason="part_missing_name",
                    quote_part_id=part.id,
                )
            if part.id not in linked_part_ids:
                raise QuoteNotConvertibleError(
                    f"Quote part {_part_label(part)} has no associated line item with pricing",
                    reason="orphaned_part",
                    quote_part_id=part.id,
                )
        return warnings

    async def convert(
        self,
        quote_id: int,
        *,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> QuoteConversionResult:
        plan = await asyncio.to_thread(self._load_plan, quote_id)
        order_number = await self.order_numbers.reserve()

        # a rival may have committed while we reserved; skip the copies then
        claimed_by = await asyncio.to_thread(self._converted_order_id, quote_id)
        if claimed_by is not None:
            raise QuoteAlreadyConvertedError(quote_id, claimed_by)

        for part_plan in plan.parts:
            await self._migrate_assets(part_plan)

        try:
            result = await asyncio.to_thread(
                self._write_order, plan, order_number, user_id, user_email
            )
        except (IntegrityError, OperationalError) as exc:
            claimed_by = await asyncio.to_thread(self._converted_order_id, quote_id)
            if claimed_by is None:
                raise
            logger.info("Quote %s was converted concurrently; aborting", quote_id)
            raise QuoteAlreadyConvertedError(quote_id, claimed_by) from exc

        logger.info(
            "Quote %s converted to order %s (%s parts)",
            quote_id,
            result.order_number,
            len(result.part_ids),
        )
        return result

    def _load_plan(self, quote_id: int) -> _ConversionPlan:
        with session_scope(self._session_factory) as session:
            quote = session.get(Quote, quote_id)
            if quote is None:
                raise NotFoundError("quote", quote_id)
            warnings = self.check_convertible(quote)

            line_items = list(quote.line_items)
            items_by_part: Dict[str, List[QuoteLineItem]] = defaultdict(list)
            for item in line_items:
                if item.quote_part_id:
                    items_by_part[item.quote_part_id].append(item)

            parts = []
            for quote_part in quote.parts:
                versions = list_versions(session, EntityKind.QUOTE_PART, quote_part.id)
                current = next((v.version for v in versions if v.is_current_version), 1)
                parts.append(
                    _PartPlan(
                        quote_part=quote_part,
                        line_items=items_by_part.get(quote_part.id, []),
                        versions=versions,
                        current_version=current,
                    )
                )
            return _ConversionPlan(
                quote=quote, line_items=line_items, parts=parts, warnings=warnings
            )

    def _converted_order_id(self, quote_id: int) -> Optional[int]:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(Quote.converted_to_order_id).where(Quote.id == quote_id))

    async def _migrate_assets(self, part_plan: _PartPlan) -> None:
        """Copy the part's objects to their order-side keys before the write transaction."""
        quote_part = part_plan.quote_part
        try:
            part_plan.assets = await self.migrator.migrate_part_assets(
                cad_ref=quote_part.part_file_url,
                mesh_ref=part_plan.mesh_ref,
                thumbnail_ref=quote_part.thumbnail_url,
                part_id=part_plan.part_id,
                current_version=part_plan.current_version,
            )
            part_plan.version_rows = await self.migrator.copy_versions(
                part_plan.versions, dest_kind=EntityKind.PART, dest_id=part_plan.part_id
            )
        except Exception as exc:
            raise self._part_failure(quote_part, exc) from exc
        if part_plan.assets.fallbacks:
            logger.warning(
                "Part %s keeps quote-part references for %s",
                part_plan.label,
                ", ".join(part_plan.assets.fallbacks),
            )

    def _part_failure(self, quote_part: QuotePart, exc: Exception) -> PartMigrationError:
        label = _part_label(quote_part)
        logger.error("Failed to convert quote part %s: %s", label, exc)
        return PartMigrationError(label, str(exc), quote_part_id=quote_part.id)

    def _write_order(
        self,
        plan: _ConversionPlan,
        order_number: str,
        user_id: Optional[str],
        user_email: Optional[str],
    ) -> QuoteConversionResult:
        """
        Every database write of the conversion, in one transaction with no
        awaits inside it. Called through asyncio.to_thread.
        """
        quote = plan.quote
        now = datetime.utcnow()
        total = line_items_total(plan.line_items)
        vendor_pay = (total * Decimal(str(self.settings.VENDOR_PAY_RATIO))).quantize(
            CENTS, rounding=ROUND_HALF_UP
        )

        with session_scope(self._session_factory) as session:
            order = Order(
                order_number=order_number,
                customer_id=quote.customer_id,
                vendor_id=quote.vendor_id,
                source_quote_id=quote.id,
                status=OrderStatus.PENDING.value,
                total_price=total,
                vendor_pay=vendor_pay,
                lead_time=quote.lead_time,
                created_by=user_id,
            )
            session.add(order)
            session.flush()

            claimed = session.execute(
                update(Quote)
                .where(Quote.id == quote.id, Quote.converted_to_order_id.is_(None))
                .values(
                    converted_to_order_id=order.id,
                    converted_at=now,
                    status=QuoteStatus.ACCEPTED.value,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                logger.info("Quote %s was converted concurrently; aborting", quote.id)
                raise QuoteAlreadyConvertedError(quote.id)

            part_ids: List[str] = []
            line_item_count = 0
            for part_plan in plan.parts:
                self._write_part(session, quote, part_plan, order)
                part_ids.append(part_plan.part_id)
                line_item_count += len(part_plan.line_items)

            for item in plan.line_items:
                if item.quote_part_id:
                    continue
                session.add(
                    OrderLineItem(
                        order_id=order.id,
                        part_id=None,
                        name=item.name or f"Line item from quote {quote.quote_number}",
                        description=item.description or "",
                        quantity=item.quantity,
                        unit_price=_money(item.unit_price),
                        notes=item.notes,
                    )
                )
                line_item_count += 1

            self._copy_attachments_and_notes(session, quote, order)
            session.flush()

            enqueue_event(
                session,
                QuoteConvertedEvent(
                    quote_id=quote.id,
                    quote_number=quote.quote_number,
                    order_id=order.id,
                    order_number=order.order_number,
                    part_count=len(part_ids),
                    line_item_count=line_item_count,
                    warnings=plan.warnings,
                    actor_id=user_id,
                    actor_email=user_email,
                ),
                self.bus,
            )
            enqueue_event(
                session,
                OrderCreatedEvent(
                    order_id=order.id,
                    order_number=order.order_number,
                    source_quote_id=quote.id,
                    total_price=str(total),
                    actor_id=user_id,
                    actor_email=user_email,
                ),
                self.bus,
            )
            result = QuoteConversionResult(
                quote_id=quote.id,
                order_id=order.id,
                order_number=order.order_number,
                total_price=total,
                part_ids=part_ids,
                line_item_count=line_item_count,
                warnings=plan.warnings,
            )
        return result

    def _write_part(self, session: Session, quote: Quote, part_plan: _PartPlan, order: Order) -> None:
        quote_part = part_plan.quote_part
        assets = part_plan.assets
        status = part_plan.status
        try:
            session.add(
                Part(
                    id=part_plan.part_id,
                    customer_id=quote.customer_id,
                    part_name=quote_part.part_name,
                    material=quote_part.material,
                    tolerance=quote_part.tolerance,
                    finishing=quote_part.finish,
                    notes=quote_part.description,
                    part_file_url=assets.cad_ref,
                    part_mesh_url=assets.mesh_ref,
                    thumbnail_url=assets.thumbnail_ref,
                    mesh_conversion_status=status,
                    mesh_conversion_error=(
                        quote_part.mesh_conversion_error
                        if status == ConversionStatus.FAILED.value
                        else None
                    ),
                    mesh_conversion_job_id=quote_part.mesh_conversion_job_id,
                    mesh_conversion_started_at=quote_part.mesh_conversion_started_at,
                    mesh_conversion_completed_at=quote_part.mesh_conversion_completed_at,
                )
            )
            session.flush()
            session.add_all(part_plan.version_rows)

            drawings = session.scalars(
                select(QuotePartDrawing).where(QuotePartDrawing.quote_part_id == quote_part.id)
            )
            for drawing in drawings:
                session.add(
                    PartDrawing(
                        part_id=part_plan.part_id,
                        attachment_id=drawing.attachment_id,
                        version=drawing.version,
                    )
                )

            for item in part_plan.line_items:
                session.add(
                    OrderLineItem(
                        order_id=order.id,
                        part_id=part_plan.part_id,
                        name=quote_part.part_name,
                        description=item.description or quote_part.description or "",
                        quantity=item.quantity,
                        unit_price=_money(item.unit_price),
                        notes=item.notes,
                    )
                )
            session.flush()
        except Exception as exc:
            raise self._part_failure(quote_part, exc) from exc

    def _copy_attachments_and_notes(self, session: Session, quote: Quote, order: Order) -> None:
        attachment_ids = session.scalars(
            select(QuoteAttachment.attachment_id).where(QuoteAttachment.quote_id == quote.id)
        ).all()
        for attachment_id in attachment_ids:
            session.add(OrderAttachment(order_id=order.id, attachment_id=attachment_id))

        notes = session.scalars(
            select(Note).where(
                Note.entity_type == "quote",
                Note.entity_id == str(quote.id),
                Note.is_archived.is_(False),
            )
        ).all()
        for note in notes:
            session.add(
                Note(
                    entity_type="order",
                    entity_id=str(order.id),
                    content=note.content,
                    created_by=note.created_by,
                    is_archived=False,
                )
            )
