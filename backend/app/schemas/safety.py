"""
CONTRACT: Safety Signal Gateway

Input: user id (+ symbol for the IV gate)
Output: SignalOutcome (ok / blocked / unavailable) -> SafetySignal

Threat history, blind spots and the IV gate score come from external
collaborators. Outcomes are tri-state so the caller decides whether
"unavailable" fails open or closed.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.iv_score import ScoreLevel


# =============================================================================
# ENUMS
# =============================================================================


class ThreatSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SignalType(str, Enum):
    THREATS = "threats"
    BLIND_SPOTS = "blind_spots"
    IV_GATE = "iv_gate"


class SignalStatus(str, Enum):
    OK = "ok"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"


class CircuitStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


RISK_BLIND_SPOT_CATEGORY = "risk"

# Collaborators answer in camelCase
_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# COLLABORATOR PAYLOADS
# =============================================================================


class Threat(BaseModel):
    """A detected behavioural or market threat."""

    model_config = _CAMEL

    type: str
    severity: ThreatSeverity
    is_active: bool = True
    detected_at: Optional[datetime] = None


class ThreatHistory(BaseModel):
    model_config = _CAMEL

    threats: list[Threat] = Field(default_factory=list)


class BlindSpot(BaseModel):
    """A tracked behavioural risk pattern."""

    model_config = _CAMEL

    name: str
    category: str
    is_active: bool = True
    is_guard_railed: bool = False


class BlindSpotReport(BaseModel):
    model_config = _CAMEL

    blind_spots: list[BlindSpot] = Field(default_factory=list)


class IVGateScore(BaseModel):
    """Symbol-specific volatility gate score."""

    score: float = Field(..., ge=0, le=10)
    level: ScoreLevel
    source: str = "provider"


NEUTRAL_IV_GATE_SCORE = IVGateScore(score=5.0, level=ScoreLevel.MEDIUM, source="default")


# =============================================================================
# OUTCOMES
# =============================================================================


class FetchResult(BaseModel):
    """Raw result of a protected collaborator call."""

    ok: bool
    payload: Any = None
    fetched_at: Optional[datetime] = None
    stale: bool = False
    error: Optional[str] = None


class SignalOutcome(BaseModel):
    """
    Tri-state result of one safety lookup.
    Sent by: Safety Signal Gateway
    Received by: Risk Validation Pipeline
    """

    signal_type: SignalType
    status: SignalStatus
    reason: Optional[str] = None
    payload: Any = None
    fetched_at: Optional[datetime] = None
    stale: bool = False


class SafetySignal(BaseModel):
    """A resolved safety decision after the fail-open / fail-closed policy."""

    signal_type: SignalType
    blocked: bool
    reason: Optional[str] = None
    payload: Any = None
    fetched_at: Optional[datetime] = None


class CircuitState(BaseModel):
    """Snapshot of one dependency's circuit breaker."""

    name: str
    state: CircuitStatus
    failure_count: int
    last_failure_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
