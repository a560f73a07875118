"""
Append-only CAD source file history for parts and quote parts.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from fabquote.models.base import Base


class CadFileVersion(Base):
    __tablename__ = "cad_file_versions"
    __table_args__ = (
        Index("ix_cad_versions_entity", "entity_type", "entity_id"),
        Index("ix_cad_versions_current", "entity_type", "entity_id", "is_current_version"),
        Index("ix_cad_versions_version", "entity_type", "entity_id", "version", unique=True),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(20), nullable=False)  # EntityKind value
    entity_id = Column(String, nullable=False)
    version = Column(Integer, nullable=False)
    is_current_version = Column(Boolean, default=False, nullable=False)

    s3_key = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    content_type = Column(String(120), nullable=True)
    uploaded_by = Column(String(120), nullable=True)
    uploaded_by_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
