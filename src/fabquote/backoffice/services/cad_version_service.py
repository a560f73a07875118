"""
CAD file version history for parts and quote parts.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from fabquote.backoffice.models.cad_version import CadFileVersion
from fabquote.backoffice.models.conversion import EntityKind
from fabquote.exceptions.handlers import NotFoundError

logger = logging.getLogger(__name__)


class CadVersionService:
    def __init__(self, session: Session):
        self.session = session

    def _entity_filter(self, kind: EntityKind, entity_id: str):
        return (
            CadFileVersion.entity_type == kind.value,
            CadFileVersion.entity_id == entity_id,
        )

    def list_versions(self, kind: EntityKind, entity_id: str) -> List[CadFileVersion]:
        stmt = (
            select(CadFileVersion)
            .where(*self._entity_filter(kind, entity_id))
            .order_by(CadFileVersion.version.desc())
        )
        return list(self.session.scalars(stmt))

    def current_version(self, kind: EntityKind, entity_id: str) -> Optional[CadFileVersion]:
        stmt = select(CadFileVersion).where(
            *self._entity_filter(kind, entity_id),
            CadFileVersion.is_current_version.is_(True),
        )
        return self.session.scalars(stmt).first()

    def latest_version_number(self, kind: EntityKind, entity_id: str) -> int:
        stmt = select(func.max(CadFileVersion.version)).where(
            *self._entity_filter(kind, entity_id)
        )
        return int(self.session.execute(stmt).scalar() or 0)

    def count_versions(self, kind: EntityKind, entity_id: str) -> int:
        stmt = select(func.count()).select_from(CadFileVersion).where(
            *self._entity_filter(kind, entity_id)
        )
        return int(self.session.execute(stmt).scalar() or 0)

    def get_version(self, version_id: str) -> Optional[CadFileVersion]:
        return self.session.get(CadFileVersion, version_id)

    def _unset_current(self, kind: EntityKind, entity_id: str) -> None:
        self.session.execute(
            update(CadFileVersion)
            .where(*self._entity_filter(kind, entity_id))
            .values(is_current_version=False)
            .execution_options(synchronize_session="fetch")
        )

    def create_version(
        self,
        kind: EntityKind,
        entity_id: str,
        *,
        s3_key: str,
        file_name: str,
        file_size: Optional[int] = None,
        content_type: Optional[str] = None,
        uploaded_by: Optional[str] = None,
        uploaded_by_email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CadFileVersion:
        """Append the next version and make it the only current one."""
        next_version = self.latest_version_number(kind, entity_id) + 1
        self._unset_current(kind, entity_id)
        version = CadFileVersion(
            entity_type=kind.value,
            entity_id=entity_id,
            version=next_version,
            is_current_version=True,
            s3_key=s3_key,
            file_name=file_name,
            file_size=file_size,
            content_type=content_type,
            uploaded_by=uploaded_by,
            uploaded_by_email=uploaded_by_email,
            notes=notes,
        )
        self.session.add(version)
        self.session.flush()
        logger.info("Created CAD version %s for %s %s", next_version, kind.value, entity_id)
        return version

    def restore_version(self, version_id: str) -> CadFileVersion:
        version = self.get_version(version_id)
        if version is None:
            raise NotFoundError("cad_file_version", version_id)
        kind = EntityKind(version.entity_type)
        self._unset_current(kind, version.entity_id)
        version.is_current_version = True
        self.session.flush()
        logger.info(
            "Restored CAD version %s for %s %s", version.version, kind.value, version.entity_id
        )
        return version
