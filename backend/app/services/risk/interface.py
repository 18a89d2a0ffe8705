"""
Risk Validation Service Interface

Defines the contract for the risk validation layer.
"""

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.services.base import BaseService
from app.schemas.proposal import ProposalDraft
from app.schemas.risk import CheckResult, ValidationResult


@dataclass
class RiskValidationInput:
    """Input for risk validation."""

    user_id: str
    draft: ProposalDraft
    now: Optional[datetime] = None


class RiskServiceInterface(BaseService[RiskValidationInput, ValidationResult]):
    """
    Risk Validation Service Contract.

    INPUT: RiskValidationInput
        - user_id: Caller identity
        - draft: Validated ProposalDraft (account id, symbol, size, prices)
        - now: Evaluation time

    OUTPUT: ValidationResult
        - passed: True only if every check passed
        - reasons: Every blocking reason that applies
        - block_reason: Highest-priority category
        - risk_metrics: Numbers each check looked at (audit)

    CHECKS (run concurrently, evaluated together):
        1. Threat check (fail-closed, returns immediately when blocked)
        2. Blind-spot check (fail-closed, returns immediately when blocked)
        3. Trading-frequency check (fail-open)
        4. Standard risk check (loss limit, size, margin, concurrent positions)
        5. IV gate, only for volatility strategies (fail-open to neutral)
    """

    @property
    def name(self) -> str:
        return "RiskService"

    @abstractmethod
    async def execute(self, input_data: RiskValidationInput) -> ValidationResult:
        """Validate a draft against every risk check."""
        pass

    @abstractmethod
    async def validate(
        self,
        user_id: str,
        draft: ProposalDraft,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        pass

    @abstractmethod
    async def check_trading_frequency(
        self,
        user_id: str,
        account_id: int,
        now: datetime,
    ) -> CheckResult:
        """Proposals in the trailing 24 hours against the user's limit."""
        pass

    @abstractmethod
    async def check_standard_risk(
        self,
        user_id: str,
        draft: ProposalDraft,
        now: datetime,
    ) -> CheckResult:
        """Daily loss, position size, margin and concurrent position limits."""
        pass

    @abstractmethod
    def requires_iv_gate(self, strategy_name: str) -> bool:
        """Whether a strategy is volatility-sensitive."""
        pass
