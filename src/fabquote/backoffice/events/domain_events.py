"""
Domain events raised by the conversion pipeline and the quote -> order flow.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QuoteConvertedEvent(DomainEvent):
    event_type: str = "quote_converted"
    quote_id: int
    quote_number: str
    order_id: int
    order_number: str
    part_count: int = 0
    line_item_count: int = 0
    warnings: List[str] = Field(default_factory=list)


class OrderCreatedEvent(DomainEvent):
    event_type: str = "order_created"
    order_id: int
    order_number: str
    source_quote_id: Optional[int] = None
    total_price: str


class MeshConversionFinishedEvent(DomainEvent):
    event_type: str = "mesh_conversion_finished"
    entity_kind: str
    entity_id: str
    status: str
    job_id: Optional[str] = None
    mesh_file_ref: Optional[str] = None
    error: Optional[str] = None


class CadMeshDeletedEvent(DomainEvent):
    event_type: str = "cad_mesh_deleted"
    entity_kind: str
    entity_id: str
    reason: str
    mesh_file_ref: Optional[str] = None
    thumbnail_ref: Optional[str] = None


class CadRevisionCreatedEvent(DomainEvent):
    event_type: str = "cad_revision_created"
    entity_kind: str
    entity_id: str
    version: int
    file_name: str
    restored: bool = False
