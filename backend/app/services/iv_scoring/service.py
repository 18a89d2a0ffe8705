"""
IV Scoring Service Implementation

Reads market state, derives session and calendar flags, and runs the
pure scoring engine.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.market_hours import (
    get_trading_session,
    is_earnings_season,
    is_fomc_week,
    is_market_closed,
)
from app.schemas.iv_score import IVScoreRequest, IVScoreResult, ScoringFlags
from app.schemas.safety import IVGateScore
from app.services.base import DependencyUnavailable
from app.services.cache.redis_client import MarketStateCache, get_market_state_cache
from app.services.iv_scoring.engine import calculate_iv_score, score_to_level
from app.services.iv_scoring.interface import IVScoringInput, IVScoringServiceInterface

logger = logging.getLogger(__name__)


def derive_flags(now: datetime) -> ScoringFlags:
    """Calendar flags for a moment in time."""
    return ScoringFlags(
        is_market_closed=is_market_closed(now),
        is_earnings_season=is_earnings_season(now),
        is_fomc_week=is_fomc_week(now),
    )


class IVScoringService(IVScoringServiceInterface):
    """
    IV Scoring Service.

    Pure engine + market state lookup.
    """

    def __init__(self, market_state: Optional[MarketStateCache] = None):
        self._market_state = market_state

    @property
    def market_state(self) -> MarketStateCache:
        if self._market_state is None:
            self._market_state = get_market_state_cache()
        return self._market_state

    async def execute(self, input_data: IVScoringInput) -> IVScoreResult:
        now = input_data.now or datetime.now(timezone.utc)

        vix = await self.market_state.get_vix_state(now)
        if vix is None:
            raise DependencyUnavailable(self.name, "No VIX reading available")

        events = await self.market_state.get_recent_events(now=now)
        session = get_trading_session(now)
        previous = await self.market_state.get_previous_session_score(session.name.value)

        result = calculate_iv_score(
            events=events,
            vix=vix,
            instrument=input_data.symbol,
            reference_price=input_data.reference_price,
            flags=derive_flags(now),
            previous_session_score=previous,
            now=now,
        )
        await self.market_state.set_session_score(result.score, session.name.value, now)
        logger.info(
            f"IV score {result.symbol}: {result.score:.1f} "
            f"(VIX {vix.level:.1f}, {len(events)} events, {session.name.value})"
        )
        return result

    def score(self, request: IVScoreRequest) -> IVScoreResult:
        return calculate_iv_score(
            events=request.events,
            vix=request.vix,
            instrument=request.symbol,
            reference_price=request.reference_price,
            flags=request.flags,
            previous_session_score=request.previous_session_score,
            now=request.now,
        )

    async def gate_score(self, symbol: str, now: Optional[datetime] = None) -> IVGateScore:
        result = await self.execute(IVScoringInput(symbol=symbol, now=now))
        return IVGateScore(score=result.score, level=score_to_level(result.score), source="engine")

    async def health_check(self) -> bool:
        """Scoring is pure computation; healthy if market state is reachable."""
        try:
            await self.market_state.get_vix_state()
            return True
        except Exception:
            return False


# Singleton instance
_service_instance: Optional[IVScoringService] = None


def get_iv_scoring_service() -> IVScoringService:
    """Get or create IV scoring service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = IVScoringService()
    return _service_instance
