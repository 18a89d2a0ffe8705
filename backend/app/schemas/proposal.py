"""
CONTRACT: Proposal Lifecycle

Input: ProposalDraft (validated) + ValidationResult
Output: Proposal -> ProposalCreated | ProposalBlocked

A proposal is created only after risk validation passes and then moves
through a fixed set of states. Terminal states are permanent.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator

from app.schemas.risk import BlockReason, RiskMetrics


# =============================================================================
# ENUMS
# =============================================================================


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    EXECUTED = "executed"
    FAILED = "failed"


class ProposalSide(str, Enum):
    BUY = "buy"
    SELL = "sell"
    LONG = "long"
    SHORT = "short"

    @property
    def is_buy(self) -> bool:
        return self in (ProposalSide.BUY, ProposalSide.LONG)


class OrderType(str, Enum):
    LIMIT = "limit"
    MARKET = "market"
    STOP = "stop"
    TRAILING_STOP = "trailingStop"
    JOIN_BID = "joinBid"
    JOIN_ASK = "joinAsk"


class AcknowledgeDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# =============================================================================
# INPUT: ProposalDraft
# =============================================================================


class BracketOrder(BaseModel):
    """Stop-loss or take-profit leg, in ticks from entry."""

    ticks: int = Field(..., gt=0)
    type: Literal["Stop", "Limit"]


class ProposalDraft(BaseModel):
    """
    A trade the autopilot wants to place.
    Sent by: Strategy / API caller
    Received by: Risk Validation Pipeline
    """

    strategy_name: str = Field(..., min_length=1, max_length=100)
    account_id: int = Field(..., gt=0)
    contract_id: Optional[str] = None
    symbol: str = Field(..., min_length=1, max_length=20)
    side: ProposalSide
    size: int = Field(..., gt=0)
    order_type: OrderType
    limit_price: Optional[float] = Field(default=None, gt=0)
    stop_price: Optional[float] = Field(default=None, gt=0)
    stop_loss_ticks: Optional[int] = Field(default=None, gt=0)
    take_profit_ticks: Optional[int] = Field(default=None, gt=0)
    reasoning: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _check_prices(self) -> "ProposalDraft":
        if self.order_type == OrderType.LIMIT and self.limit_price is None:
            raise ValueError("limit orders require limit_price")
        if self.order_type == OrderType.STOP and self.stop_price is None:
            raise ValueError("stop orders require stop_price")
        return self

    @property
    def entry_price(self) -> Optional[float]:
        return self.limit_price or self.stop_price


# =============================================================================
# STATE: Proposal
# =============================================================================


class Proposal(BaseModel):
    """A persisted trading proposal. Retained as audit history."""

    id: str
    user_id: str
    account_id: int
    strategy_name: str
    symbol: str
    contract_id: Optional[str] = None
    side: ProposalSide
    size: int
    order_type: OrderType
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    stop_loss: Optional[BracketOrder] = None
    take_profit: Optional[BracketOrder] = None
    status: ProposalStatus
    risk_metrics: RiskMetrics = Field(default_factory=RiskMetrics)
    reasoning: Optional[str] = None
    iv_score: Optional[float] = None
    created_at: datetime
    expires_at: datetime
    acknowledged_at: Optional[datetime] = None
    execution_started_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    external_order_id: Optional[str] = None
    error_message: Optional[str] = None
    rejection_reason: Optional[str] = None


# =============================================================================
# OUTPUT: Decisions
# =============================================================================


class ProposalCreated(BaseModel):
    blocked: Literal[False] = False
    proposal_id: str
    status: ProposalStatus
    risk_metrics: RiskMetrics
    expires_at: datetime


class ProposalBlocked(BaseModel):
    blocked: Literal[True] = True
    reason: BlockReason
    detail: list[str] = Field(default_factory=list)


ProposalDecision = Union[ProposalCreated, ProposalBlocked]


class AcknowledgeRequest(BaseModel):
    decision: AcknowledgeDecision


class AcknowledgeResult(BaseModel):
    proposal_id: str
    status: ProposalStatus
    reason: Optional[str] = None


class ExecutionResult(BaseModel):
    proposal_id: str
    status: ProposalStatus
    order_id: str
    contract_id: str
    executed_at: datetime


class ExecutionRecord(BaseModel):
    """One execute attempt. Written for every success or failure."""

    proposal_id: str
    user_id: str
    account_id: int
    contract_id: Optional[str] = None
    order_id: Optional[str] = None
    status: ProposalStatus
    order_payload: dict = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime


class ProposalList(BaseModel):
    proposals: list[Proposal]
    total: int
    limit: int
    offset: int
