"""
Autopilot Schema Contracts

This module defines all JSON contracts between system components.
These are the authoritative interfaces - all modules must conform to these schemas.
"""

from app.schemas.events import (
    EventType,
    EventUrgency,
    EventRecord,
    EventNumbers,
    CATASTROPHIC_EVENT_TYPES,
)
from app.schemas.iv_score import (
    TradingSession,
    ScoreLevel,
    VIXState,
    SessionInfo,
    InstrumentProfile,
    ScoringFlags,
    ImpliedPoints,
    IVScoreResult,
    IVScoreRequest,
)
from app.schemas.safety import (
    ThreatSeverity,
    SignalType,
    SignalStatus,
    CircuitStatus,
    Threat,
    ThreatHistory,
    BlindSpot,
    BlindSpotReport,
    IVGateScore,
    SignalOutcome,
    SafetySignal,
    CircuitState,
)
from app.schemas.risk import (
    BlockReason,
    AccountSnapshot,
    RiskSettings,
    RiskMetrics,
    ValidationResult,
)
from app.schemas.proposal import (
    ProposalStatus,
    ProposalSide,
    OrderType,
    AcknowledgeDecision,
    BracketOrder,
    ProposalDraft,
    Proposal,
    ProposalCreated,
    ProposalBlocked,
    AcknowledgeResult,
    ExecutionResult,
    ExecutionRecord,
)

__all__ = [
    # Events
    "EventType",
    "EventUrgency",
    "EventRecord",
    "EventNumbers",
    "CATASTROPHIC_EVENT_TYPES",
    # IV score
    "TradingSession",
    "ScoreLevel",
    "VIXState",
    "SessionInfo",
    "InstrumentProfile",
    "ScoringFlags",
    "ImpliedPoints",
    "IVScoreResult",
    "IVScoreRequest",
    # Safety
    "ThreatSeverity",
    "SignalType",
    "SignalStatus",
    "CircuitStatus",
    "Threat",
    "ThreatHistory",
    "BlindSpot",
    "BlindSpotReport",
    "IVGateScore",
    "SignalOutcome",
    "SafetySignal",
    "CircuitState",
    # Risk
    "BlockReason",
    "AccountSnapshot",
    "RiskSettings",
    "RiskMetrics",
    "ValidationResult",
    # Proposal
    "ProposalStatus",
    "ProposalSide",
    "OrderType",
    "AcknowledgeDecision",
    "BracketOrder",
    "ProposalDraft",
    "Proposal",
    "ProposalCreated",
    "ProposalBlocked",
    "AcknowledgeResult",
    "ExecutionResult",
    "ExecutionRecord",
]
