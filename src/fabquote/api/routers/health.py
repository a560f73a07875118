from __future__ import annotations

from fastapi import APIRouter, Depends

from fabquote import __version__
from fabquote.api.dependencies.services import get_conversion_client
from fabquote.config import get_settings
from fabquote.context import get_request_context
from fabquote.integrations.conversion_service import (
    ConversionServiceClient,
    ConversionServiceError,
)

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> dict:
    ctx = get_request_context()
    settings = get_settings()
    return {
        "ok": True,
        "service": "fabquote",
        "version": __version__,
        "request_id": ctx.request_id,
        "schema_mode": settings.SCHEMA_MODE,
        "storage_type": settings.STORAGE_TYPE,
        "conversion_configured": bool(settings.CONVERSION_API_URL),
    }


@router.get("/health/conversion")
async def conversion_health(
    client: ConversionServiceClient = Depends(get_conversion_client),
) -> dict:
    if not client.configured:
        return {"ok": False, "configured": False}
    try:
        payload = await client.health()
    except ConversionServiceError as exc:
        return {"ok": False, "configured": True, "error": str(exc)}
    return {"ok": True, "configured": True, "service": payload}
