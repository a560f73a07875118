"""
Order models: orders, order line items, production parts and their links.
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


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PRODUCTION = "In_Production"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    ARCHIVED = "Archived"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(20), nullable=False, unique=True, index=True)
    customer_id = Column(Integer, nullable=True, index=True)
    vendor_id = Column(Integer, nullable=True)
    source_quote_id = Column(Integer, nullable=True, index=True)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    total_price = Column(Numeric(12, 2), nullable=True)
    vendor_pay = Column(Numeric(12, 2), nullable=True)
    lead_time = Column(String(40), nullable=True)
    ship_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(String(120), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        order_by="OrderLineItem.id",
        cascade="all, delete-orphan",
    )


class Part(MeshConversionMixin, Base):
    __tablename__ = "parts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(Integer, nullable=True, index=True)
    part_name = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    material = Column(String(120), nullable=True)
    tolerance = Column(String(120), nullable=True)
    finishing = Column(String(120), nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class OrderLineItem(Base):
    __tablename__ = "order_line_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(String, ForeignKey("parts.id"), nullable=True, index=True)
    name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="line_items")


class PartDrawing(Base):
    __tablename__ = "part_drawings"

    part_id = Column(String, ForeignKey("parts.id", ondelete="CASCADE"), primary_key=True)
    attachment_id = Column(String, ForeignKey("attachments.id"), primary_key=True)
    version = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class OrderAttachment(Base):
    __tablename__ = "order_attachments"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    attachment_id = Column(String, ForeignKey("attachments.id"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)
