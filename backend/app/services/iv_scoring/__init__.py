"""
IV Scoring Engine

CONTRACT:
    Input:  EventRecords + VIXState + instrument + calendar flags
    Output: IVScoreResult

RESPONSIBILITIES:
    - Decay event weights by age and stack them (with synergy)
    - Apply session and VIX tier multipliers
    - Adjust for VIX spikes and previous-session spillover
    - Floor at the activity baseline
    - Compute the Rule-of-16 implied move in points, ticks and dollars

PURE PYTHON - No LLM involvement.
Same inputs and `now` always give the same result.
"""

from app.services.iv_scoring.engine import calculate_iv_score, calculate_implied_points, score_to_level
from app.services.iv_scoring.instruments import INSTRUMENT_PROFILES, get_instrument_profile
from app.services.iv_scoring.interface import IVScoringInput, IVScoringServiceInterface
from app.services.iv_scoring.service import IVScoringService, get_iv_scoring_service

__all__ = [
    "calculate_iv_score",
    "calculate_implied_points",
    "score_to_level",
    "INSTRUMENT_PROFILES",
    "get_instrument_profile",
    "IVScoringInput",
    "IVScoringServiceInterface",
    "IVScoringService",
    "get_iv_scoring_service",
]
