"""
CONTRACT: Risk Validation Pipeline

Input: user id + account id + ProposalDraft
Output: ValidationResult

This module performs DETERMINISTIC risk checks.
A proposal is only created when every check passes.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.safety import IVGateScore, SafetySignal


# =============================================================================
# ENUMS
# =============================================================================


class BlockReason(str, Enum):
    VALIDATION = "validation"
    THREAT = "threat"
    BLIND_SPOT = "blind_spot"
    TRADING_FREQUENCY = "trading_frequency"
    RISK = "risk"
    IV_SCORE = "iv_score"
    INTERNAL_ERROR = "internal_error"


# =============================================================================
# INPUT: Account + Settings (from storage collaborators)
# =============================================================================


class AccountSnapshot(BaseModel):
    """Broker account balances."""

    account_id: int
    user_id: str
    balance: Decimal
    buying_power: Decimal
    margin_used: Decimal = Decimal("0")


class RiskSettings(BaseModel):
    """
    Per-user risk limits.
    Single canonical source for the trading-frequency limit as well.
    """

    daily_loss_limit: Decimal = Field(default=Decimal("500"), ge=0)
    max_position_size: int = Field(default=5, ge=1)
    require_stop_loss: bool = True
    max_trades_per_day: int = Field(default=10, ge=1)


# =============================================================================
# OUTPUT: ValidationResult
# =============================================================================


class RiskMetrics(BaseModel):
    """Snapshot of the numbers each check looked at. Stored for audit."""

    daily_loss: Optional[Decimal] = None
    daily_loss_limit: Optional[Decimal] = None
    position_size: Optional[int] = None
    max_position_size: Optional[int] = None
    account_balance: Optional[Decimal] = None
    buying_power: Optional[Decimal] = None
    estimated_margin: Optional[Decimal] = None
    concurrent_positions: Optional[int] = None
    trades_in_window: Optional[int] = None
    trade_limit: Optional[int] = None
    iv_score: Optional[float] = None


class CheckResult(BaseModel):
    """Result of one local risk check."""

    passed: bool
    reasons: list[str] = Field(default_factory=list)
    metrics: dict = Field(default_factory=dict)


class ValidationResult(BaseModel):
    """
    Aggregated outcome of every check for one draft.
    Sent by: Risk Validation Pipeline
    Received by: Proposal Lifecycle Manager
    """

    passed: bool
    reasons: list[str] = Field(default_factory=list)
    block_reason: Optional[BlockReason] = None
    risk_metrics: RiskMetrics = Field(default_factory=RiskMetrics)
    iv_gate: Optional[IVGateScore] = None
    signals: list[SafetySignal] = Field(default_factory=list)
