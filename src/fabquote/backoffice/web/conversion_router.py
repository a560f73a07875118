from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from fabquote.api.dependencies.services import (
    get_conversion_client,
    get_object_store,
    get_session_factory,
)
from fabquote.backoffice.models.conversion import EntityKind
from fabquote.backoffice.services.conversion_orchestrator import (
    ConversionOrchestrator,
    ConversionResult,
)
from fabquote.backoffice.services.conversion_state import ConversionSnapshot
from fabquote.backoffice.services.file_service import ObjectStore
from fabquote.database import SessionFactory
from fabquote.exceptions.handlers import FabQuoteException
from fabquote.integrations.conversion_service import ConversionServiceClient

conversion_router = APIRouter(prefix="/conversions", tags=["Mesh Conversion"])

_KIND_BY_PREFIX = {kind.storage_prefix: kind for kind in EntityKind}


class ConversionStatusResponse(BaseModel):
    entity_id: str
    kind: str
    status: str
    source_file_ref: Optional[str] = None
    mesh_file_ref: Optional[str] = None
    error: Optional[str] = None
    job_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ConversionResultResponse(BaseModel):
    entity_id: str
    outcome: str
    success: bool
    mesh_file_ref: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None


class BatchConversionRequest(BaseModel):
    entity_ids: List[str] = Field(..., min_length=1)
    batch_size: Optional[int] = Field(default=None, ge=1, le=10)


class BatchConversionResponse(BaseModel):
    total: int
    completed: int
    failed: int
    results: List[ConversionResultResponse]


def _to_status(snapshot: ConversionSnapshot) -> ConversionStatusResponse:
    return ConversionStatusResponse(
        entity_id=snapshot.entity_id,
        kind=snapshot.kind.value,
        status=snapshot.status.value,
        source_file_ref=snapshot.source_file_ref,
        mesh_file_ref=snapshot.mesh_file_ref,
        error=snapshot.error,
        job_id=snapshot.job_id,
        started_at=snapshot.started_at,
        completed_at=snapshot.completed_at,
    )


def _to_result(result: ConversionResult) -> ConversionResultResponse:
    return ConversionResultResponse(**result.to_dict())


def _kind(kind: str) -> EntityKind:
    try:
        return _KIND_BY_PREFIX[kind]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown entity kind: {kind}")


def get_orchestrator(
    kind: str,
    session_factory: SessionFactory = Depends(get_session_factory),
    client: ConversionServiceClient = Depends(get_conversion_client),
    object_store: ObjectStore = Depends(get_object_store),
) -> ConversionOrchestrator:
    return ConversionOrchestrator(
        _kind(kind),
        session_factory=session_factory,
        client=client,
        object_store=object_store,
    )


@conversion_router.get("/{kind}/stats")
def conversion_stats(
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> Dict[str, int]:
    return orchestrator.stats()


@conversion_router.get("/{kind}/pending", response_model=List[ConversionStatusResponse])
def pending_conversions(
    limit: int = Query(10, ge=1, le=100),
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> List[ConversionStatusResponse]:
    return [_to_status(s) for s in orchestrator.pending_entities(limit)]


@conversion_router.post("/{kind}/batch", response_model=BatchConversionResponse)
async def batch_convert(
    req: BatchConversionRequest,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> BatchConversionResponse:
    results = await orchestrator.convert_batch(req.entity_ids, req.batch_size)
    completed = sum(1 for r in results.values() if r.success)
    return BatchConversionResponse(
        total=len(results),
        completed=completed,
        failed=len(results) - completed,
        results=[_to_result(r) for r in results.values()],
    )


@conversion_router.get("/{kind}/{entity_id}", response_model=ConversionStatusResponse)
def conversion_status(
    entity_id: str,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> ConversionStatusResponse:
    try:
        return _to_status(orchestrator.status(entity_id))
    except FabQuoteException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc


@conversion_router.post("/{kind}/{entity_id}/convert", response_model=ConversionResultResponse)
async def convert_entity(
    entity_id: str,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> ConversionResultResponse:
    try:
        return _to_result(await orchestrator.convert(entity_id))
    except FabQuoteException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc


@conversion_router.post("/{kind}/{entity_id}/retry", response_model=ConversionResultResponse)
async def retry_entity(
    entity_id: str,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> ConversionResultResponse:
    try:
        return _to_result(await orchestrator.retry(entity_id))
    except FabQuoteException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc


@conversion_router.get("/{kind}/{entity_id}/mesh-url")
async def mesh_url(
    entity_id: str,
    expiration: int = Query(3600, ge=60, le=86400),
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> Dict[str, str]:
    try:
        url = await orchestrator.mesh_url(entity_id, expiration)
    except FabQuoteException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc
    return {"entity_id": entity_id, "url": url}
