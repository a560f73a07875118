"""
Persistence of per-entity mesh conversion state.

One store per EntityKind; parts and quote parts share the same column shape
(MeshConversionMixin). Every transition is a conditional UPDATE guarded by the
set of statuses it may leave from, and commits in its own short session so a
long-running conversion never holds a database transaction open.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Type

from sqlalchemy import func, select, update

from fabquote.backoffice.models.conversion import ConversionStatus, EntityKind
from fabquote.backoffice.models.order import Part
from fabquote.backoffice.models.quote import QuotePart
from fabquote.database import SessionFactory, session_scope
from fabquote.exceptions.handlers import InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)

MODEL_BY_KIND: Dict[EntityKind, Type[Any]] = {
    EntityKind.PART: Part,
    EntityKind.QUOTE_PART: QuotePart,
}

S = ConversionStatus

# status -> statuses it may move to (reset for a replaced source file is separate)
ALLOWED_TRANSITIONS: Dict[ConversionStatus, FrozenSet[ConversionStatus]] = {
    S.PENDING: frozenset({S.QUEUED, S.SKIPPED}),
    S.QUEUED: frozenset({S.IN_PROGRESS, S.FAILED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.FAILED}),
    S.FAILED: frozenset({S.PENDING}),
    S.COMPLETED: frozenset(),
    S.SKIPPED: frozenset(),
}

_UNSET = object()


def sources_for(target: ConversionStatus) -> FrozenSet[ConversionStatus]:
    return frozenset(src for src, dests in ALLOWED_TRANSITIONS.items() if target in dests)


@dataclass(frozen=True)
class ConversionSnapshot:
    entity_id: str
    kind: EntityKind
    status: ConversionStatus
    source_file_ref: Optional[str]
    mesh_file_ref: Optional[str]
    thumbnail_ref: Optional[str]
    error: Optional[str]
    job_id: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "source_file_ref": self.source_file_ref,
            "mesh_file_ref": self.mesh_file_ref,
            "thumbnail_ref": self.thumbnail_ref,
            "error": self.error,
            "job_id": self.job_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ConversionStateStore:
    def __init__(self, kind: EntityKind, session_factory: SessionFactory):
        self.kind = kind
        self.model = MODEL_BY_KIND[kind]
        self._session_factory = session_factory

    def _snapshot(self, row: Any) -> ConversionSnapshot:
        return ConversionSnapshot(
            entity_id=row.id,
            kind=self.kind,
            status=ConversionStatus(row.mesh_conversion_status),
            source_file_ref=row.part_file_url,
            mesh_file_ref=row.part_mesh_url,
            thumbnail_ref=row.thumbnail_url,
            error=row.mesh_conversion_error,
            job_id=row.mesh_conversion_job_id,
            started_at=row.mesh_conversion_started_at,
            completed_at=row.mesh_conversion_completed_at,
            name=getattr(row, "part_name", None),
        )

    def get(self, entity_id: str) -> Optional[ConversionSnapshot]:
        with session_scope(self._session_factory) as session:
            row = session.get(self.model, entity_id)
            return self._snapshot(row) if row is not None else None

    def require(self, entity_id: str) -> ConversionSnapshot:
        snapshot = self.get(entity_id)
        if snapshot is None:
            raise NotFoundError(self.kind.value, entity_id)
        return snapshot

    def _transition(
        self,
        entity_id: str,
        target: ConversionStatus,
        from_statuses: Optional[Iterable[ConversionStatus]] = None,
        expected_job_id: Optional[str] = None,
        **values: Any,
    ) -> ConversionSnapshot:
        allowed = frozenset(from_statuses) if from_statuses is not None else sources_for(target)
        model = self.model
        stmt = update(model).where(model.id == entity_id)
        if allowed:
            stmt = stmt.where(
                model.mesh_conversion_status.in_([status.value for status in allowed])
            )
        if expected_job_id is not None:
            stmt = stmt.where(model.mesh_conversion_job_id == expected_job_id)
        values["mesh_conversion_status"] = target.value
        values["updated_at"] = datetime.utcnow()
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        with session_scope(self._session_factory) as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                row = session.get(model, entity_id)
                if row is None:
                    raise NotFoundError(self.kind.value, entity_id)
                raise InvalidTransitionError(
                    row.mesh_conversion_status, target.value, entity_id=entity_id
                )
            row = session.get(model, entity_id, populate_existing=True)
            snapshot = self._snapshot(row)

        logger.debug("%s %s -> %s", self.kind.value, entity_id, target.value)
        return snapshot

    def mark_queued(self, entity_id: str) -> ConversionSnapshot:
        return self._transition(
            entity_id,
            S.QUEUED,
            part_mesh_url=None,
            mesh_conversion_error=None,
            mesh_conversion_job_id=None,
            mesh_conversion_started_at=datetime.utcnow(),
            mesh_conversion_completed_at=None,
        )

    def mark_in_progress(self, entity_id: str, job_id: str) -> ConversionSnapshot:
        return self._transition(entity_id, S.IN_PROGRESS, mesh_conversion_job_id=job_id)

    def mark_completed(
        self, entity_id: str, mesh_file_ref: str, job_id: Optional[str] = None
    ) -> ConversionSnapshot:
        """Complete the run. With `job_id`, only while that job still owns the entity."""
        if not mesh_file_ref:
            raise ValueError("A completed conversion requires a mesh file ref")
        return self._transition(
            entity_id,
            S.COMPLETED,
            expected_job_id=job_id,
            part_mesh_url=mesh_file_ref,
            mesh_conversion_error=None,
            mesh_conversion_completed_at=datetime.utcnow(),
        )

    def mark_failed(
        self, entity_id: str, error: Optional[str], job_id: Optional[str] = None
    ) -> ConversionSnapshot:
        return self._transition(
            entity_id,
            S.FAILED,
            expected_job_id=job_id,
            part_mesh_url=None,
            mesh_conversion_error=(error or "").strip() or "Conversion failed",
            mesh_conversion_completed_at=datetime.utcnow(),
        )

    def mark_skipped(self, entity_id: str) -> ConversionSnapshot:
        return self._transition(
            entity_id,
            S.SKIPPED,
            part_mesh_url=None,
            mesh_conversion_error=None,
            mesh_conversion_job_id=None,
        )

    def reset_to_pending(
        self,
        entity_id: str,
        *,
        from_statuses: Optional[Iterable[ConversionStatus]] = None,
        source_file_ref: Any = _UNSET,
        clear_thumbnail: bool = False,
    ) -> ConversionSnapshot:
        """
        Move back to pending and discard mesh, job and error.

        With the default `from_statuses` only a failed conversion may reset
        (retry). A source-file replacement passes every status explicitly.
        """
        values: Dict[str, Any] = {
            "part_mesh_url": None,
            "mesh_conversion_error": None,
            "mesh_conversion_job_id": None,
            "mesh_conversion_started_at": None,
            "mesh_conversion_completed_at": None,
        }
        if source_file_ref is not _UNSET:
            values["part_file_url"] = source_file_ref
        if clear_thumbnail:
            values["thumbnail_url"] = None
        return self._transition(entity_id, S.PENDING, from_statuses, **values)

    def stats(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ConversionStatus}
        stmt = select(self.model.mesh_conversion_status, func.count()).group_by(
            self.model.mesh_conversion_status
        )
        with session_scope(self._session_factory) as session:
            for status, count in session.execute(stmt):
                counts[status] = int(count)
        counts["total"] = sum(counts[status.value] for status in ConversionStatus)
        return counts

    def list_pending(self, limit: int = 10) -> List[ConversionSnapshot]:
        """Entities with a source file that have not been converted yet, oldest first."""
        model = self.model
        stmt = (
            select(model)
            .where(model.mesh_conversion_status == S.PENDING.value)
            .where(model.part_file_url.isnot(None))
            .order_by(model.created_at)
            .limit(limit)
        )
        with session_scope(self._session_factory) as session:
            return [self._snapshot(row) for row in session.scalars(stmt)]
