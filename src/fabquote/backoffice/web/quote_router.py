from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from fabquote.api.dependencies.services import get_object_store, get_session_factory
from fabquote.backoffice.services.file_service import ObjectStore
from fabquote.backoffice.services.quote_conversion_service import QuoteConversionService
from fabquote.context import get_request_context
from fabquote.database import SessionFactory
from fabquote.exceptions.handlers import FabQuoteException

quote_router = APIRouter(prefix="/quotes", tags=["Quotes"])


class ConvertQuoteResponse(BaseModel):
    quote_id: int
    order_id: int
    order_number: str
    total_price: str
    part_ids: List[str]
    line_item_count: int
    warnings: List[str]


@quote_router.post("/{quote_id}/convert-to-order", response_model=ConvertQuoteResponse)
async def convert_quote_to_order(
    quote_id: int,
    session_factory: SessionFactory = Depends(get_session_factory),
    object_store: ObjectStore = Depends(get_object_store),
) -> ConvertQuoteResponse:
    ctx = get_request_context()
    service = QuoteConversionService(session_factory, object_store=object_store)
    try:
        result = await service.convert(quote_id, user_id=ctx.user_id, user_email=ctx.user_email)
    except FabQuoteException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc
    return ConvertQuoteResponse(**result.to_dict())
