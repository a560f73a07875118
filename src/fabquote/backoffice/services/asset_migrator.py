"""
Relocation of CAD, mesh and thumbnail objects between entity namespaces.

Copy failures degrade to the original reference (logged) instead of failing
the surrounding operation; the resulting record may then point into the
source entity's namespace.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from fabquote.backoffice.models.cad_version import CadFileVersion
from fabquote.backoffice.models.conversion import EntityKind
from fabquote.backoffice.services import storage_keys
from fabquote.backoffice.services.file_service import ObjectStore, ObjectStoreError
from fabquote.backoffice.services.format_guard import file_name

logger = logging.getLogger(__name__)


@dataclass
class MigratedAssets:
    cad_ref: Optional[str] = None
    mesh_ref: Optional[str] = None
    thumbnail_ref: Optional[str] = None
    fallbacks: List[str] = field(default_factory=list)


class AssetMigrator:
    def __init__(self, object_store: ObjectStore):
        self.object_store = object_store

    async def copy_asset(
        self, source_ref: Optional[str], destination_prefix: str, default_name: str = "file"
    ) -> Optional[str]:
        """
        Copy one object under `destination_prefix`, keeping its file name.

        Returns the new key, or `source_ref` unchanged when the copy fails.
        """
        if not source_ref:
            return None
        source_key = storage_keys.storage_key(source_ref)
        if not source_key:
            return source_ref
        dest_key = f"{destination_prefix}/{file_name(source_key, default_name)}"
        try:
            return await self.object_store.copy(source_key, dest_key)
        except ObjectStoreError as exc:
            logger.warning(
                "Failed to copy %s to %s, falling back to original reference: %s",
                source_key,
                dest_key,
                exc,
            )
            return source_ref

    async def migrate_part_assets(
        self,
        *,
        cad_ref: Optional[str],
        mesh_ref: Optional[str],
        thumbnail_ref: Optional[str],
        part_id: str,
        current_version: int = 1,
    ) -> MigratedAssets:
        kind = EntityKind.PART
        result = MigratedAssets()
        targets = (
            ("cad_ref", cad_ref, storage_keys.source_prefix(kind, part_id, current_version), "cad-file"),
            ("mesh_ref", mesh_ref, storage_keys.mesh_prefix(kind, part_id), "mesh.glb"),
            ("thumbnail_ref", thumbnail_ref, storage_keys.thumbnail_prefix(kind, part_id), "thumbnail.png"),
        )
        for attr, ref, prefix, default_name in targets:
            new_ref = await self.copy_asset(ref, prefix, default_name)
            setattr(result, attr, new_ref)
            if ref and new_ref == ref:
                result.fallbacks.append(attr)
        return result

    async def copy_versions(
        self,
        versions: Sequence[CadFileVersion],
        *,
        dest_kind: EntityKind,
        dest_id: str,
    ) -> List[CadFileVersion]:
        """
        Copy the objects of `versions` under the destination entity and return
        unsaved version rows for the ones copied, preserving version numbers
        and the current flag. A version whose object cannot be copied is
        skipped. Uses no session.
        """
        rows: List[CadFileVersion] = []
        for version in versions:
            dest_key = (
                f"{storage_keys.source_prefix(dest_kind, dest_id, version.version)}/"
                f"{version.file_name}"
            )
            source_key = storage_keys.storage_key(version.s3_key) or version.s3_key
            try:
                await self.object_store.copy(source_key, dest_key)
            except ObjectStoreError as exc:
                logger.warning(
                    "Skipping CAD version %s of %s %s: %s",
                    version.version,
                    version.entity_type,
                    version.entity_id,
                    exc,
                )
                continue
            rows.append(
                CadFileVersion(
                    entity_type=dest_kind.value,
                    entity_id=dest_id,
                    version=version.version,
                    is_current_version=version.is_current_version,
                    s3_key=dest_key,
                    file_name=version.file_name,
                    file_size=version.file_size,
                    content_type=version.content_type,
                    uploaded_by=version.uploaded_by,
                    uploaded_by_email=version.uploaded_by_email,
                    notes=version.notes,
                    created_at=version.created_at,
                )
            )
        return rows

    async def copy_version_history(
        self,
        session: Session,
        *,
        source_kind: EntityKind,
        source_id: str,
        dest_kind: EntityKind,
        dest_id: str,
    ) -> int:
        """Copy every CAD version of one entity to another. Returns the number copied."""
        rows = await self.copy_versions(
            list_versions(session, source_kind, source_id), dest_kind=dest_kind, dest_id=dest_id
        )
        session.add_all(rows)
        session.flush()
        return len(rows)


def list_versions(session: Session, kind: EntityKind, entity_id: str) -> List[CadFileVersion]:
    return list(
        session.scalars(
            select(CadFileVersion)
            .where(CadFileVersion.entity_type == kind.value, CadFileVersion.entity_id == entity_id)
            .order_by(CadFileVersion.version)
        )
    )
