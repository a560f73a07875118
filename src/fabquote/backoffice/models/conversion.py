"""
Mesh conversion state shared by every convertible entity (parts, quote parts).
"""

import enum

from sqlalchemy import Column, DateTime, String, Text


class ConversionStatus(str, enum.Enum):
    PENDING = "pending"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


ACTIVE_CONVERSION_STATUSES = {
    ConversionStatus.QUEUED.value,
    ConversionStatus.IN_PROGRESS.value,
}


class EntityKind(str, enum.Enum):
    PART = "part"
    QUOTE_PART = "quote_part"

    @property
    def storage_prefix(self) -> str:
        return "parts" if self is EntityKind.PART else "quote-parts"


class MeshConversionMixin:
    """
    Columns describing one entity's CAD source file and its derived mesh.

    part_mesh_url is set only when mesh_conversion_status == completed and
    mesh_conversion_error only when it is failed.
    """

    part_file_url = Column(Text, nullable=True)
    part_mesh_url = Column(Text, nullable=True)
    thumbnail_url = Column(Text, nullable=True)

    mesh_conversion_status = Column(
        String(20), default=ConversionStatus.PENDING.value, nullable=False, index=True
    )
    mesh_conversion_error = Column(Text, nullable=True)
    mesh_conversion_job_id = Column(String(120), nullable=True)
    mesh_conversion_started_at = Column(DateTime, nullable=True)
    mesh_conversion_completed_at = Column(DateTime, nullable=True)
