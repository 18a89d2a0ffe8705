"""
CONTRACT: IV Scoring Engine

Input: EventRecords + VIXState + SessionInfo + InstrumentProfile + ScoringFlags
Output: IVScoreResult

Pure computation. Every result is built fresh per request and never mutated.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.schemas.events import EventRecord


# =============================================================================
# ENUMS
# =============================================================================


class TradingSession(str, Enum):
    ASIAN = "Asian"
    LONDON = "London"
    NEW_YORK = "NewYork"
    AFTER_HOURS = "AfterHours"


class ScoreLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    GOOD = "good"
    HIGH = "high"


# =============================================================================
# INPUTS
# =============================================================================


class VIXState(BaseModel):
    """Latest VIX reading. Refreshed by an external feed."""

    model_config = ConfigDict(frozen=True)

    level: float = Field(..., ge=0)
    previous_level: float = Field(default=0.0, ge=0)
    minutes_since_update: float = Field(default=0.0, ge=0)


class SessionInfo(BaseModel):
    """Derived from wall-clock time, never stored."""

    model_config = ConfigDict(frozen=True)

    name: TradingSession
    multiplier: float
    start_hour_et: int
    end_hour_et: int


class InstrumentProfile(BaseModel):
    """Static reference data for a futures contract."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    beta: float
    tick_size: float = Field(..., gt=0)
    tick_value: float = Field(..., gt=0)
    reference_price: float = Field(..., gt=0)
    description: Optional[str] = None


class ScoringFlags(BaseModel):
    """Calendar flags that affect scoring."""

    model_config = ConfigDict(frozen=True)

    is_market_closed: bool = False
    is_earnings_season: bool = False
    is_fomc_week: bool = False


# =============================================================================
# OUTPUT: IVScoreResult
# =============================================================================


class ImpliedPoints(BaseModel):
    """Rule-of-16 expected move for one instrument."""

    model_config = ConfigDict(frozen=True)

    pct_move: float = Field(..., description="Expected daily % move (VIX / 16)")
    base_points: float
    adjusted_points: float = Field(..., description="Base points scaled by |beta|")
    ticks: int
    dollar_risk: float = Field(..., description="Ticks x tick value, per contract")


class IVScoreResult(BaseModel):
    """
    Composite 0-10 opportunity/risk score.
    Sent by: IV Scoring Engine
    Received by: Risk Validation Pipeline, API
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    score: float = Field(..., ge=0, le=10)
    implied_points: ImpliedPoints
    session: SessionInfo
    vix_level: float
    vix_multiplier: float
    vix_tier: str
    activity_baseline: float
    stacked_event_count: int
    synergy_applied: bool
    daily_decay_multiplier: float = 1.0
    hold_minutes: Optional[int] = Field(
        default=None,
        description="Suggested hold duration when an edge case forced the score",
    )
    rationale: list[str]
    alert: Optional[str] = None
    calculated_at: datetime


# =============================================================================
# API REQUEST
# =============================================================================


class IVScoreRequest(BaseModel):
    """Explicit inputs for a one-off score calculation."""

    symbol: str = Field(default="/ES", description="Futures symbol, e.g. /ES")
    reference_price: Optional[float] = Field(default=None, gt=0)
    events: list[EventRecord] = Field(default_factory=list)
    vix: VIXState
    flags: ScoringFlags = Field(default_factory=ScoringFlags)
    previous_session_score: float = Field(default=0.0, ge=0, le=10)
    now: Optional[datetime] = None
