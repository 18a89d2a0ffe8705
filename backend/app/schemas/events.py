"""
Market Event Records

Input: headline text + source tags (classified upstream)
Output: EventRecord

Events are immutable once classified. The IV scoring engine reads them,
never writes them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class EventType(str, Enum):
    # Catastrophic
    BLACK_SWAN = "blackSwan"
    DATACENTER_HALT = "datacenterHalt"
    GOVERNMENT_SHUTDOWN = "governmentShutdown"
    MAJOR_CRISIS = "majorCrisis"

    # Fed / policy
    FED_DECISION = "fedDecision"
    FOMC = "fomc"
    POWELL_SPEAK = "powellSpeak"

    # Geopolitical / trade
    GEOPOLITICAL = "geopolitical"
    TARIFFS = "tariffs"
    CHINA_TRADE = "chinaTrade"
    CONFLICT = "conflict"

    # Scheduled macro prints
    CPI_PRINT = "cpiPrint"
    PCE_PRINT = "pcePrint"
    NFP_PRINT = "nfpPrint"
    JOLTS = "jolts"
    GDP_PRINT = "gdpPrint"
    ISM_PRINT = "ismPrint"

    # Named political commentary
    POLITICAL_COMMENTARY = "politicalCommentary"

    # Earnings
    EARNINGS_HIGH_IMPACT = "earningsHighImpact"
    EARNINGS_MID_CAP = "earningsMidCap"

    # Everything else
    RETAIL_SALES = "retailSales"
    SECTOR_NEWS = "sectorNews"
    MERGER = "merger"
    OTHER = "other"


class EventUrgency(str, Enum):
    IMMEDIATE = "immediate"
    HIGH = "high"
    NORMAL = "normal"


CATASTROPHIC_EVENT_TYPES = frozenset({
    EventType.BLACK_SWAN,
    EventType.DATACENTER_HALT,
    EventType.GOVERNMENT_SHUTDOWN,
    EventType.MAJOR_CRISIS,
})


# =============================================================================
# EVENT RECORD
# =============================================================================


class EventNumbers(BaseModel):
    """Actual vs forecast figures for a data print."""

    model_config = ConfigDict(frozen=True)

    actual: Optional[float] = None
    forecast: Optional[float] = None


class EventRecord(BaseModel):
    """
    A classified market event.
    Sent by: Event feed (external)
    Received by: IV Scoring Engine
    """

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    is_breaking: bool = False
    urgency: EventUrgency = EventUrgency.NORMAL
    magnitude: Optional[float] = Field(default=None, ge=0)
    numbers: Optional[EventNumbers] = None
    timestamp: datetime
    headline: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_catastrophic(self) -> bool:
        return self.event_type in CATASTROPHIC_EVENT_TYPES
