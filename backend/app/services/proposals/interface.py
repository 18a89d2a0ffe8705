"""
Proposal Lifecycle Service Interface

Defines the contract for the proposal lifecycle layer.
"""

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from app.services.base import BaseService
from app.schemas.proposal import (
    AcknowledgeDecision,
    AcknowledgeResult,
    ExecutionResult,
    Proposal,
    ProposalDecision,
    ProposalDraft,
    ProposalList,
    ProposalStatus,
)


@dataclass
class ProposeTradeInput:
    """Input for proposal creation. Raw dicts are validated into a ProposalDraft."""

    user_id: str
    draft: Union[ProposalDraft, dict[str, Any]]


class ProposalServiceInterface(BaseService[ProposeTradeInput, ProposalDecision]):
    """
    Proposal Lifecycle Contract.

    INPUT: ProposeTradeInput
        - user_id: Caller identity
        - draft: ProposalDraft or its raw dict form

    OUTPUT: ProposalDecision
        - ProposalCreated: proposal_id, status=pending, risk_metrics, expires_at
        - ProposalBlocked: reason + detail (never raised)

    STATE MACHINE:
        draft -> pending -> approved | rejected | expired
        approved -> executed | failed
        Terminal states are permanent.
    """

    @property
    def name(self) -> str:
        return "ProposalService"

    @abstractmethod
    async def execute(self, input_data: ProposeTradeInput) -> ProposalDecision:
        pass

    @abstractmethod
    async def propose_trade(
        self,
        user_id: str,
        draft: Union[ProposalDraft, dict[str, Any]],
    ) -> ProposalDecision:
        """Validate and, on all-pass, persist a pending proposal."""
        pass

    @abstractmethod
    async def acknowledge_proposal(
        self,
        user_id: str,
        proposal_id: str,
        decision: AcknowledgeDecision,
    ) -> AcknowledgeResult:
        """Approve or reject a pending proposal."""
        pass

    @abstractmethod
    async def execute_proposal(self, user_id: str, proposal_id: str) -> ExecutionResult:
        """Send an approved proposal to the broker."""
        pass

    @abstractmethod
    async def get_proposal(self, user_id: str, proposal_id: str) -> Proposal:
        pass

    @abstractmethod
    async def list_proposals(
        self,
        user_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ProposalList:
        pass

    @abstractmethod
    async def get_pending_proposals(self, user_id: str) -> list[Proposal]:
        pass

    @abstractmethod
    async def expire_stale_proposals(self, now: Optional[datetime] = None) -> int:
        """Move every overdue pending proposal to expired. Returns the count."""
        pass
