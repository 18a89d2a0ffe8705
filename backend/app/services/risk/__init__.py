"""
Risk Validation Pipeline

CONTRACT:
    Input:  user id + ProposalDraft
    Output: ValidationResult

RESPONSIBILITIES:
    - Threat and blind-spot kill-switches (fail-closed)
    - Trading-frequency cap over the trailing 24 hours (fail-open)
    - Daily loss limit, max position size, buying power, concurrent positions
    - IV gate for volatility-sensitive strategies (fail-open to neutral)

Every check runs concurrently; the decision is made only once all of them
have returned. Blocks are returned as data, never raised.
"""

from app.services.risk.interface import RiskServiceInterface, RiskValidationInput
from app.services.risk.service import RiskValidationService, get_risk_service

__all__ = [
    "RiskServiceInterface",
    "RiskValidationInput",
    "RiskValidationService",
    "get_risk_service",
]
