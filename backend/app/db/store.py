"""
Storage contracts used by the risk pipeline and the proposal lifecycle.

Two implementations:
- SqlTradingStore (app.db.repository): SQLAlchemy, used by the API
- InMemoryTradingStore (app.db.memory): process memory, used by tests and demos
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.schemas.proposal import ExecutionRecord, Proposal, ProposalStatus
from app.schemas.risk import AccountSnapshot, RiskSettings


class TradingDataSource(ABC):
    """Account, settings and trade-history lookups for risk checks."""

    @abstractmethod
    async def get_account(self, user_id: str, account_id: int) -> Optional[AccountSnapshot]:
        pass

    @abstractmethod
    async def get_risk_settings(self, user_id: str) -> Optional[RiskSettings]:
        pass

    @abstractmethod
    async def count_recent_proposals(self, user_id: str, account_id: int, since: datetime) -> int:
        """Proposals created for the account at or after `since`, any status."""
        pass

    @abstractmethod
    async def get_realized_pnl_today(self, user_id: str, account_id: int, since: datetime) -> Decimal:
        """Net realized P&L of trades closed at or after `since` (start of the trading day)."""
        pass

    @abstractmethod
    async def count_open_positions(self, user_id: str, account_id: int) -> int:
        pass


class ProposalStore(ABC):
    """Proposal persistence. Status changes are compare-and-set."""

    @abstractmethod
    async def persist_proposal(self, proposal: Proposal) -> Proposal:
        pass

    @abstractmethod
    async def update_proposal_status(
        self,
        proposal_id: str,
        status: ProposalStatus,
        expected_status: Optional[ProposalStatus] = None,
        **fields,
    ) -> Optional[Proposal]:
        """
        Set status (and any extra fields).

        Returns the updated proposal, or None when the proposal does not
        exist or its current status differs from `expected_status`.
        """
        pass

    @abstractmethod
    async def claim_for_execution(self, proposal_id: str, started_at: datetime) -> Optional[Proposal]:
        """
        Mark an approved proposal as being sent to the broker.

        Only one caller can claim a proposal. Returns None when it is not
        approved or has already been claimed.
        """
        pass

    @abstractmethod
    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        pass

    @abstractmethod
    async def list_proposals(
        self,
        user_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Proposal], int]:
        """Newest first. Returns (page, total matching)."""
        pass

    @abstractmethod
    async def list_overdue_pending(self, now: datetime) -> list[Proposal]:
        """Pending proposals whose expiry is before `now`."""
        pass

    @abstractmethod
    async def record_execution(self, record: ExecutionRecord) -> None:
        pass

    @abstractmethod
    async def list_executions(self, proposal_id: str) -> list[ExecutionRecord]:
        pass

    @abstractmethod
    async def record_trade_opened(
        self,
        proposal: Proposal,
        entry_price: Optional[float],
        opened_at: datetime,
    ) -> None:
        """Journal the position opened by an executed proposal."""
        pass

    @abstractmethod
    async def log_system_event(
        self,
        user_id: str,
        event_type: str,
        proposal_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        pass


class TradingStore(TradingDataSource, ProposalStore):
    """Everything the autopilot core needs from storage."""
    pass
