"""
Mesh conversion orchestration.

One orchestrator per EntityKind drives an entity through
pending -> queued -> in_progress -> completed|failed, talking to the external
conversion service and the object store and recording every step through
ConversionStateStore. Failures are recorded on the entity and returned as a
ConversionResult; only precondition errors on explicit operations (retry on a
non-failed entity, unknown ids) raise.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from fabquote.backoffice.events.domain_events import (
    CadMeshDeletedEvent,
    CadRevisionCreatedEvent,
    DomainEvent,
    MeshConversionFinishedEvent,
)
from fabquote.backoffice.events.event_bus import EventBus, event_bus
from fabquote.backoffice.models.conversion import ConversionStatus, EntityKind
from fabquote.backoffice.services import storage_keys
from fabquote.backoffice.services.cad_version_service import CadVersionService
from fabquote.backoffice.services.conversion_state import (
    ConversionSnapshot,
    ConversionStateStore,
)
from fabquote.backoffice.services.file_service import ObjectStore, ObjectStoreError
from fabquote.backoffice.services.format_guard import (
    FormatGuard,
    classify,
    file_name,
    mesh_content_type,
    needs_conversion,
    sanitize_filename,
)
from fabquote.backoffice.services.runtime_config import RuntimeConfigService
from fabquote.config import get_settings
from fabquote.config.settings import Settings
from fabquote.database import SessionFactory, session_scope
from fabquote.exceptions.handlers import (
    FabQuoteException,
    FileTooLargeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fabquote.integrations.conversion_service import (
    ConversionOptions,
    ConversionServiceClient,
    ConversionServiceError,
    ConversionTimeoutError,
    PollSettings,
)

logger = logging.getLogger(__name__)

NOT_BREP_ERROR = "File is not a BREP format that requires conversion"
CANCELLED_ERROR = "Conversion polling cancelled"
BATCH_MISSING_ERROR = "Entity not found or has no BREP file"
STALE_RUN_ERROR = "Source file changed during conversion; result discarded"


class ConversionOutcome(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class ConversionResult:
    entity_id: str
    outcome: ConversionOutcome
    mesh_file_ref: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is ConversionOutcome.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "outcome": self.outcome.value,
            "success": self.success,
            "mesh_file_ref": self.mesh_file_ref,
            "job_id": self.job_id,
            "error": self.error,
        }


class ConversionOrchestrator:
    def __init__(
        self,
        kind: EntityKind,
        *,
        session_factory: SessionFactory,
        client: ConversionServiceClient,
        object_store: ObjectStore,
        format_guard: Optional[FormatGuard] = None,
        enabled: Optional[Callable[[], bool]] = None,
        poll: Optional[PollSettings] = None,
        batch_size: Optional[int] = None,
        bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None,
    ):
        self.kind = kind
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.state = ConversionStateStore(kind, session_factory)
        self.client = client
        self.object_store = object_store

        runtime = RuntimeConfigService(session_factory, self.settings)
        self._enabled = enabled or runtime.conversion_enabled
        self.format_guard = format_guard or FormatGuard(
            max_file_size_bytes=self.settings.CONVERSION_MAX_FILE_SIZE_BYTES,
            output_format_provider=runtime.output_format,
        )
        self.poll = poll or PollSettings(
            interval_s=self.settings.CONVERSION_POLL_INTERVAL_SECONDS,
            max_attempts=self.settings.CONVERSION_POLL_MAX_ATTEMPTS,
            budget_s=self.settings.CONVERSION_POLL_BUDGET_SECONDS,
        )
        self.batch_size = max(1, batch_size or self.settings.CONVERSION_BATCH_SIZE)
        self.bus = bus or event_bus

    # ------------------------------------------------------------------
    # single entity
    # ------------------------------------------------------------------

    async def convert(self, entity_id: str) -> ConversionResult:
        """
        Run the full pipeline for one pending entity against its recorded
        source file.

        Raises NotFoundError for an unknown id and InvalidTransitionError when
        the entity is not pending; every other failure is recorded as failed.
        """
        snapshot = self.state.require(entity_id)
        source = snapshot.source_file_ref

        if not self._enabled():
            self.state.mark_skipped(entity_id)
            logger.info("Mesh conversion not configured; %s %s skipped", self.kind.value, entity_id)
            return ConversionResult(entity_id, ConversionOutcome.NOT_CONFIGURED)

        self.state.mark_queued(entity_id)
        try:
            return await self._run(entity_id, source)
        except asyncio.CancelledError:
            self._record_failure(entity_id, CANCELLED_ERROR)
            raise
        except Exception as exc:
            logger.exception("Unexpected error converting %s %s", self.kind.value, entity_id)
            return self._fail(entity_id, str(exc) or exc.__class__.__name__)

    async def _run(self, entity_id: str, source: Optional[str]) -> ConversionResult:
        if not source:
            return self._fail(entity_id, "No CAD file to convert")
        if not needs_conversion(classify(source)):
            return self._fail(entity_id, NOT_BREP_ERROR)

        source_key = storage_keys.storage_key(source)
        try:
            content = await self.object_store.get(source_key)
        except ObjectStoreError as exc:
            return self._fail(entity_id, f"Failed to download file from storage: {exc}")

        try:
            self.format_guard.validate_size(len(content))
        except FileTooLargeError as exc:
            return self._fail(entity_id, exc.message)

        options = ConversionOptions(
            output_format=self.format_guard.recommended_output_format(),
            deflection=self.settings.CONVERSION_CHORDAL_DEFLECTION,
            angular_deflection=self.settings.CONVERSION_ANGULAR_DEFLECTION,
        )
        try:
            job = await self.client.submit(
                content=content, filename=file_name(source_key), options=options
            )
        except ConversionServiceError as exc:
            return self._fail(entity_id, f"Failed to submit conversion job: {exc}")

        self.state.mark_in_progress(entity_id, job.job_id)

        try:
            status = await self.client.poll(job.job_id, self.poll)
        except ConversionTimeoutError as exc:
            return self._fail(entity_id, str(exc), job.job_id)
        except ConversionServiceError as exc:
            return self._fail(entity_id, str(exc), job.job_id)

        if status.status != ConversionStatus.COMPLETED.value:
            return self._fail(
                entity_id, status.error or status.message or "Conversion failed", job.job_id
            )

        try:
            mesh = await self.client.download(job.job_id)
            mesh_name = sanitize_filename(mesh.filename)
            mesh_key = f"{storage_keys.mesh_prefix(self.kind, entity_id)}/{mesh_name}"
            await self.object_store.put(mesh_key, mesh.content, mesh_content_type(mesh_name))
        except (ConversionServiceError, ObjectStoreError) as exc:
            return self._fail(entity_id, f"Failed to store converted mesh: {exc}", job.job_id)

        try:
            self.state.mark_completed(entity_id, mesh_key, job_id=job.job_id)
        except InvalidTransitionError:
            return await self._discard_stale_mesh(entity_id, mesh_key, job.job_id)
        logger.info(
            "Mesh conversion completed for %s %s (job %s)", self.kind.value, entity_id, job.job_id
        )
        self._publish(
            MeshConversionFinishedEvent(
                entity_kind=self.kind.value,
                entity_id=entity_id,
                status=ConversionStatus.COMPLETED.value,
                job_id=job.job_id,
                mesh_file_ref=mesh_key,
            )
        )
        return ConversionResult(
            entity_id, ConversionOutcome.COMPLETED, mesh_file_ref=mesh_key, job_id=job.job_id
        )

    async def _discard_stale_mesh(
        self, entity_id: str, mesh_key: str, job_id: str
    ) -> ConversionResult:
        # the entity moved on since this job started; leave its state alone
        logger.warning(
            "Discarding mesh of job %s for %s %s: entity changed during conversion",
            job_id,
            self.kind.value,
            entity_id,
        )
        current = self.state.get(entity_id)
        if current is None or storage_keys.storage_key(current.mesh_file_ref) != mesh_key:
            try:
                await self.object_store.delete(mesh_key)
            except ObjectStoreError as exc:
                logger.warning("Failed to delete stale mesh %s: %s", mesh_key, exc)
        return ConversionResult(
            entity_id, ConversionOutcome.FAILED, job_id=job_id, error=STALE_RUN_ERROR
        )

    def _record_failure(self, entity_id: str, error: str, job_id: Optional[str] = None) -> None:
        try:
            self.state.mark_failed(entity_id, error, job_id=job_id)
        except FabQuoteException as exc:
            logger.warning(
                "Could not record failure for %s %s: %s", self.kind.value, entity_id, exc.message
            )

    def _fail(self, entity_id: str, error: str, job_id: Optional[str] = None) -> ConversionResult:
        logger.error("Mesh conversion failed for %s %s: %s", self.kind.value, entity_id, error)
        self._record_failure(entity_id, error, job_id)
        self._publish(
            MeshConversionFinishedEvent(
                entity_kind=self.kind.value,
                entity_id=entity_id,
                status=ConversionStatus.FAILED.value,
                job_id=job_id,
                error=error,
            )
        )
        return ConversionResult(entity_id, ConversionOutcome.FAILED, job_id=job_id, error=error)

    def _publish(self, event: DomainEvent) -> None:
        self.bus.publish(event)

    async def retry(self, entity_id: str) -> ConversionResult:
        """Re-run a failed conversion against the entity's current source file."""
        snapshot = self.state.require(entity_id)
        if snapshot.status is not ConversionStatus.FAILED:
            raise InvalidTransitionError(
                snapshot.status.value, ConversionStatus.PENDING.value, entity_id=entity_id
            )
        if not snapshot.source_file_ref:
            raise ValidationError(f"{self.kind.value} has no BREP file to convert", field="part_file_url")
        self.state.reset_to_pending(entity_id)
        return await self.convert(entity_id)

    async def trigger(
        self, entity_id: str, source_file_ref: Optional[str] = None
    ) -> Optional[ConversionResult]:
        """
        Upload hook: convert B-rep files, mark anything else skipped. A
        `source_file_ref` that differs from the recorded one is saved first
        so the mesh always describes the recorded source.
        """
        if not self._enabled():
            logger.debug("Mesh conversion disabled; not triggering for %s", entity_id)
            return None
        snapshot = self.state.require(entity_id)
        if source_file_ref and source_file_ref != snapshot.source_file_ref:
            snapshot = self.state.reset_to_pending(
                entity_id,
                from_statuses=list(ConversionStatus),
                source_file_ref=source_file_ref,
            )
        if not needs_conversion(classify(snapshot.source_file_ref)):
            self.state.mark_skipped(entity_id)
            return ConversionResult(entity_id, ConversionOutcome.SKIPPED)
        return await self.convert(entity_id)

    # ------------------------------------------------------------------
    # batch
    # ------------------------------------------------------------------

    async def _convert_for_batch(self, entity_id: str) -> ConversionResult:
        snapshot = self.state.get(entity_id)
        if snapshot is None or not snapshot.source_file_ref:
            return ConversionResult(entity_id, ConversionOutcome.FAILED, error=BATCH_MISSING_ERROR)
        try:
            return await self.convert(entity_id)
        except FabQuoteException as exc:
            return ConversionResult(entity_id, ConversionOutcome.FAILED, error=exc.message)

    async def convert_batch(
        self, entity_ids: Iterable[str], batch_size: Optional[int] = None
    ) -> Dict[str, ConversionResult]:
        """
        Convert entities in sequential groups of `batch_size`, concurrently
        within a group. One entity failing never affects the others.
        """
        size = max(1, batch_size or self.batch_size)
        ids = list(dict.fromkeys(entity_ids))
        results: Dict[str, ConversionResult] = {}
        for start in range(0, len(ids), size):
            group = ids[start : start + size]
            outcomes = await asyncio.gather(
                *(self._convert_for_batch(entity_id) for entity_id in group),
                return_exceptions=True,
            )
            for entity_id, outcome in zip(group, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error("Batch conversion of %s raised: %s", entity_id, outcome)
                    outcome = ConversionResult(
                        entity_id, ConversionOutcome.FAILED, error=str(outcome)
                    )
                results[entity_id] = outcome
        logger.info(
            "Batch conversion finished: %s/%s completed",
            sum(1 for r in results.values() if r.success),
            len(results),
        )
        return results

    # ------------------------------------------------------------------
    # source file revisions
    # ------------------------------------------------------------------

    async def _delete_mesh_objects(self, snapshot: ConversionSnapshot, reason: str) -> None:
        for ref in (snapshot.mesh_file_ref, snapshot.thumbnail_ref):
            key = storage_keys.storage_key(ref)
            if not key:
                continue
            try:
                await self.object_store.delete(key)
            except ObjectStoreError as exc:
                logger.warning("Failed to delete %s for %s: %s", key, snapshot.entity_id, exc)
        if snapshot.mesh_file_ref or snapshot.thumbnail_ref:
            self._publish(
                CadMeshDeletedEvent(
                    entity_kind=self.kind.value,
                    entity_id=snapshot.entity_id,
                    reason=reason,
                    mesh_file_ref=snapshot.mesh_file_ref,
                    thumbnail_ref=snapshot.thumbnail_ref,
                )
            )

    async def delete_mesh(self, entity_id: str, reason: str = "manual") -> ConversionSnapshot:
        """Remove mesh and thumbnail objects and reset the entity to pending."""
        snapshot = self.state.require(entity_id)
        await self._delete_mesh_objects(snapshot, reason)
        return self.state.reset_to_pending(
            entity_id, from_statuses=list(ConversionStatus), clear_thumbnail=True
        )

    async def replace_source_file(
        self,
        entity_id: str,
        new_source_ref: str,
        *,
        file_size: Optional[int] = None,
        content_type: Optional[str] = None,
        uploaded_by: Optional[str] = None,
        uploaded_by_email: Optional[str] = None,
        notes: Optional[str] = None,
        run_conversion: bool = True,
    ) -> Optional[ConversionResult]:
        """
        A new CAD revision was uploaded: discard the old mesh, record a new
        current version, reset to pending and convert the new file.
        """
        snapshot = self.state.require(entity_id)
        await self._delete_mesh_objects(snapshot, "cad_revision")

        key = storage_keys.storage_key(new_source_ref) or new_source_ref
        with session_scope(self._session_factory) as session:
            version = CadVersionService(session).create_version(
                self.kind,
                entity_id,
                s3_key=key,
                file_name=file_name(key),
                file_size=file_size,
                content_type=content_type,
                uploaded_by=uploaded_by,
                uploaded_by_email=uploaded_by_email,
                notes=notes,
            )
            version_number = version.version

        self.state.reset_to_pending(
            entity_id,
            from_statuses=list(ConversionStatus),
            source_file_ref=new_source_ref,
            clear_thumbnail=True,
        )
        self._publish(
            CadRevisionCreatedEvent(
                entity_kind=self.kind.value,
                entity_id=entity_id,
                version=version_number,
                file_name=file_name(key),
                actor_id=uploaded_by,
                actor_email=uploaded_by_email,
            )
        )
        if not run_conversion:
            return None
        return await self.trigger(entity_id)

    async def restore_version(
        self, version_id: str, *, run_conversion: bool = True
    ) -> Optional[ConversionResult]:
        """Make an earlier CAD version current again and regenerate its mesh."""
        with session_scope(self._session_factory) as session:
            service = CadVersionService(session)
            version = service.get_version(version_id)
            if version is None or version.entity_type != self.kind.value:
                raise NotFoundError("cad_file_version", version_id)
            service.restore_version(version_id)
            entity_id = version.entity_id
            key = version.s3_key
            version_number = version.version
            restored_name = version.file_name

        snapshot = self.state.require(entity_id)
        await self._delete_mesh_objects(snapshot, "version_restore")
        self.state.reset_to_pending(
            entity_id,
            from_statuses=list(ConversionStatus),
            source_file_ref=key,
            clear_thumbnail=True,
        )
        self._publish(
            CadRevisionCreatedEvent(
                entity_kind=self.kind.value,
                entity_id=entity_id,
                version=version_number,
                file_name=restored_name,
                restored=True,
            )
        )
        if not run_conversion:
            return None
        return await self.trigger(entity_id)

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    async def mesh_url(self, entity_id: str, expiration: int = 3600) -> str:
        snapshot = self.state.require(entity_id)
        if snapshot.status is not ConversionStatus.COMPLETED or not snapshot.mesh_file_ref:
            raise NotFoundError("mesh", entity_id)
        return await self.object_store.presigned_url(
            storage_keys.storage_key(snapshot.mesh_file_ref), expiration
        )

    async def cad_url(self, entity_id: str, expiration: int = 3600) -> str:
        snapshot = self.state.require(entity_id)
        if not snapshot.source_file_ref:
            raise NotFoundError("cad_file", entity_id)
        return await self.object_store.presigned_url(
            storage_keys.storage_key(snapshot.source_file_ref), expiration
        )

    def status(self, entity_id: str) -> ConversionSnapshot:
        return self.state.require(entity_id)

    def pending_entities(self, limit: int = 10) -> List[ConversionSnapshot]:
        return self.state.list_pending(limit)

    def stats(self) -> Dict[str, int]:
        return self.state.stats()
