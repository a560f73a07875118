"""
Quote models: quote header, quote parts (convertible), line items and links.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from fabquote.backoffice.models.conversion import MeshConversionMixin
from fabquote.models.base import Base


class QuoteStatus(str, enum.Enum):
    RFQ = "RFQ"
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    DROPPED = "Dropped"
    EXPIRED = "Expired"


CONVERTIBLE_QUOTE_STATUSES = {QuoteStatus.SENT.value, QuoteStatus.ACCEPTED.value}


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_number = Column(String(40), nullable=False, unique=True)
    customer_id = Column(Integer, nullable=False, index=True)
    vendor_id = Column(Integer, nullable=True)
    status = Column(String(20), default=QuoteStatus.DRAFT.value, nullable=False, index=True)
    currency = Column(String(3), default="USD", nullable=False)
    total_price = Column(Numeric(12, 2), nullable=True)
    lead_time = Column(String(40), nullable=True)
    valid_until = Column(DateTime, nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)

    # null until the single successful quote -> order conversion
    converted_to_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    converted_at = Column(DateTime, nullable=True)

    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parts = relationship(
        "QuotePart",
        back_populates="quote",
        order_by="QuotePart.created_at",
        cascade="all, delete-orphan",
    )
    line_items = relationship(
        "QuoteLineItem",
        back_populates="quote",
        order_by="QuoteLineItem.id",
        cascade="all, delete-orphan",
    )


class QuotePart(MeshConversionMixin, Base):
    __tablename__ = "quote_parts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    part_number = Column(String(60), nullable=True)
    part_name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    material = Column(String(120), nullable=True)
    tolerance = Column(String(120), nullable=True)
    finish = Column(String(120), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quote = relationship("Quote", back_populates="parts")


class QuoteLineItem(Base):
    __tablename__ = "quote_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    quote_part_id = Column(
        String, ForeignKey("quote_parts.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    quote = relationship("Quote", back_populates="line_items")


class QuotePartDrawing(Base):
    __tablename__ = "quote_part_drawings"

    quote_part_id = Column(
        String, ForeignKey("quote_parts.id", ondelete="CASCADE"), primary_key=True
    )
    attachment_id = Column(String, ForeignKey("attachments.id"), primary_key=True)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class QuoteAttachment(Base):
    __tablename__ = "quote_attachments"

    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), primary_key=True)
    attachment_id = Column(String, ForeignKey("attachments.id"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)
