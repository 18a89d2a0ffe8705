"""
IV Score API Endpoints

Volatility scoring, headline classification and market-state updates.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from app.core.market_hours import get_market_status
from app.schemas.events import EventRecord, EventType
from app.schemas.iv_score import IVScoreRequest, IVScoreResult, VIXState
from app.services.base import DependencyUnavailable
from app.services.cache import get_market_state_cache
from app.services.events import classify
from app.services.iv_scoring import IVScoringInput, get_iv_scoring_service

router = APIRouter()


class ClassifyRequest(BaseModel):
    """Request body for headline classification."""

    headline: str = Field(..., max_length=1000, description="Headline text")
    source_tags: list[str] = Field(default_factory=list, description="Upstream tags, e.g. fedDecision")


class ClassifyResponse(BaseModel):
    headline: str
    event_type: EventType


class VIXUpdate(BaseModel):
    """A VIX reading pushed by the market data feed."""

    level: float = Field(..., ge=0)
    updated_at: Optional[datetime] = None


@router.post("/score", response_model=IVScoreResult)
async def score(request: IVScoreRequest):
    """
    Score explicit inputs.

    Pure calculation, no stored market state involved. Returns the 0-10
    score, the implied move envelope and the step-by-step rationale.
    """
    return get_iv_scoring_service().score(request)


@router.post("/classify", response_model=ClassifyResponse)
async def classify_headline(request: ClassifyRequest):
    """Map a headline (and optional tags) to an event type."""
    return ClassifyResponse(
        headline=request.headline,
        event_type=classify(request.headline, request.source_tags),
    )


@router.get("/market-status")
async def market_status():
    """Current session, closure and calendar flags (US/Eastern)."""
    return get_market_status()


@router.post("/vix", response_model=VIXState)
async def update_vix(update: VIXUpdate):
    """Record a new VIX reading."""
    return await get_market_state_cache().set_vix(update.level, update.updated_at)


@router.post("/events", response_model=EventRecord)
async def record_event(event: EventRecord):
    """Record a classified market event for scoring."""
    await get_market_state_cache().record_event(event)
    return event


@router.get("/{symbol:path}", response_model=IVScoreResult)
async def get_iv_score(
    symbol: str,
    reference_price: Optional[float] = Query(default=None, gt=0),
):
    """
    Score a symbol from the stored market state.

    Symbols may be given with or without the leading slash (ES, /ES).
    """
    service = get_iv_scoring_service()
    try:
        return await service.execute(IVScoringInput(symbol=symbol, reference_price=reference_price))
    except DependencyUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)
