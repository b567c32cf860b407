"""Pricing router - FastAPI endpoints for quotes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...tenancy import get_tenant_id
from .schemas import (
    PricedQuote,
    QuoteDetailResponse,
    QuoteRequest,
    QuoteResponse,
    QuoteStatusUpdate,
    ScheduleQuoteRequest,
    ScheduleQuoteResponse,
)
from .service import QuoteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["Quotes"])


def get_quote_service(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> QuoteService:
    """Dependency injection for QuoteService"""
    return QuoteService(db, tenant_id)


@router.post("/preview", response_model=PricedQuote)
async def preview_quote(
    data: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
):
    """Price a request without saving it"""
    return service.preview(data)


@router.post("", response_model=PricedQuote, status_code=201)
async def create_quote(
    data: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
):
    _, priced = service.create_quote(data)
    return priced


@router.get("", response_model=list[QuoteResponse])
async def list_quotes(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: QuoteService = Depends(get_quote_service),
):
    return service.list_quotes(status, limit, offset)


@router.get("/analytics")
async def get_quote_analytics(service: QuoteService = Depends(get_quote_service)):
    """Quote volume, price and conversion by zone and tier"""
    return service.analytics()


@router.get("/{quote_id}", response_model=QuoteDetailResponse)
async def get_quote(
    quote_id: int,
    service: QuoteService = Depends(get_quote_service),
):
    return service.get_quote(quote_id)


@router.put("/{quote_id}/status", response_model=QuoteResponse)
async def update_quote_status(
    quote_id: int,
    data: QuoteStatusUpdate,
    service: QuoteService = Depends(get_quote_service),
):
    return service.update_status(quote_id, data)


@router.post("/{quote_id}/schedule", response_model=ScheduleQuoteResponse)
async def schedule_quote(
    quote_id: int,
    data: ScheduleQuoteRequest,
    service: QuoteService = Depends(get_quote_service),
):
    """Book the quote onto a route; 409 when the chosen cluster filled up first"""
    return service.schedule_quote(quote_id, data)
