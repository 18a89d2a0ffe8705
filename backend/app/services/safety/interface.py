"""
Safety Signal Provider Interface

Defines the contract for the threat-history, blind-spot and IV-gate
collaborators the gateway protects.
"""

from abc import ABC, abstractmethod

from app.schemas.safety import BlindSpotReport, IVGateScore, ThreatHistory


class SignalProvider(ABC):
    """
    Safety Signal Provider Contract.

    get_threat_history(user_id, active_only) -> ThreatHistory
    get_blind_spots(user_id)                 -> BlindSpotReport
    get_iv_gate_score(user_id, symbol)       -> IVGateScore

    Implementations may raise any exception or hang; the gateway applies
    timeouts, the circuit breaker and the fail-open/fail-closed policy.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def get_threat_history(self, user_id: str, active_only: bool = True) -> ThreatHistory:
        pass

    @abstractmethod
    async def get_blind_spots(self, user_id: str) -> BlindSpotReport:
        pass

    @abstractmethod
    async def get_iv_gate_score(self, user_id: str, symbol: str) -> IVGateScore:
        pass

    async def close(self) -> None:
        """Release connections. Default: nothing to release."""
        pass
