"""
CONTRACT: Broker Client

Input: OrderRequest (contract spec)
Output: OrderResult

Only the order-placement and contract-search shapes the autopilot needs.
Numeric enums follow the broker's wire format.
"""

from enum import IntEnum
from typing import Optional
from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class BrokerOrderType(IntEnum):
    LIMIT = 1
    MARKET = 2
    STOP_LIMIT = 3
    STOP = 4
    TRAILING_STOP = 5
    JOIN_BID = 6
    JOIN_ASK = 7


class BrokerOrderSide(IntEnum):
    BID = 0  # buy
    ASK = 1  # sell


# =============================================================================
# MODELS
# =============================================================================


class BrokerContract(BaseModel):
    contract_id: str
    name: str
    description: Optional[str] = None
    tick_size: Optional[float] = None
    tick_value: Optional[float] = None


class BracketSpec(BaseModel):
    ticks: int = Field(..., gt=0)
    type: BrokerOrderType


class OrderRequest(BaseModel):
    """What the broker needs to place one order."""

    account_id: int
    contract_id: str
    type: BrokerOrderType
    side: BrokerOrderSide
    size: int = Field(..., gt=0)
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    custom_tag: Optional[str] = None
    stop_loss_bracket: Optional[BracketSpec] = None
    take_profit_bracket: Optional[BracketSpec] = None


class OrderResult(BaseModel):
    order_id: str
