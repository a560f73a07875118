"""
Persistent audit history for domain events (quote converted, order created, ...).
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from fabquote.models.base import Base


class EventLog(Base):
    __tablename__ = "event_logs"
    __table_args__ = (Index("ix_event_logs_entity", "entity_type", "entity_id"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(60), nullable=False)
    event_type = Column(String(60), nullable=False, index=True)
    event_category = Column(String(30), nullable=False, default="system")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    user_id = Column(String(120), nullable=True)
    user_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
