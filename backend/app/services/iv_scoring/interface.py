"""
IV Scoring Service Interface

Defines the contract for the IV scoring layer.
"""

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.services.base import BaseService
from app.schemas.iv_score import IVScoreRequest, IVScoreResult
from app.schemas.safety import IVGateScore


@dataclass
class IVScoringInput:
    """Input for scoring from stored market state."""

    symbol: str
    reference_price: Optional[float] = None
    now: Optional[datetime] = None


class IVScoringServiceInterface(BaseService[IVScoringInput, IVScoreResult]):
    """
    IV Scoring Service Contract.

    INPUT: IVScoringInput
        - symbol: Futures symbol (unknown symbols use a default profile)
        - reference_price: Price for the implied move
        - now: Evaluation time

    OUTPUT: IVScoreResult
        - score: 0-10
        - implied_points: Rule-of-16 move in points, ticks and dollars
        - rationale: One line per scoring step

    Market state (VIX, events, previous session score) is read from the
    market state cache; calendar flags are derived from the clock.
    """

    @property
    def name(self) -> str:
        return "IVScoringService"

    @abstractmethod
    async def execute(self, input_data: IVScoringInput) -> IVScoreResult:
        """Score current market state for one symbol."""
        pass

    @abstractmethod
    def score(self, request: IVScoreRequest) -> IVScoreResult:
        """Score explicit inputs. Pure."""
        pass

    @abstractmethod
    async def gate_score(self, symbol: str, now: Optional[datetime] = None) -> IVGateScore:
        """Score reduced to the {score, level} shape used by the volatility gate."""
        pass
