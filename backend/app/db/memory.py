"""
In-memory trading store.

Same contract as the SQL store; used by tests and for running the API
without a database. All access goes through one asyncio lock.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from app.db.store import TradingStore
from app.schemas.proposal import ExecutionRecord, Proposal, ProposalStatus
from app.schemas.risk import AccountSnapshot, RiskSettings


@dataclass
class JournalTrade:
    account_id: int
    user_id: str
    symbol: str
    size: int
    entry_price: Optional[float] = None
    opened_at: Optional[datetime] = None
    realized_pnl: Optional[Decimal] = None
    closed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


@dataclass
class SystemEventEntry:
    user_id: str
    event_type: str
    proposal_id: Optional[str]
    payload: dict
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryTradingStore(TradingStore):
    """Dict-backed store."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.accounts: dict[tuple[str, int], AccountSnapshot] = {}
        self.settings: dict[str, RiskSettings] = {}
        self.trades: list[JournalTrade] = []
        self.proposals: dict[str, Proposal] = {}
        self.executions: list[ExecutionRecord] = []
        self.events: list[SystemEventEntry] = []

    # ============ Seeding ============

    def add_account(self, account: AccountSnapshot) -> None:
        self.accounts[(account.user_id, account.account_id)] = account

    def set_risk_settings(self, user_id: str, risk_settings: RiskSettings) -> None:
        self.settings[user_id] = risk_settings

    def add_trade(self, trade: JournalTrade) -> None:
        self.trades.append(trade)

    # ============ TradingDataSource ============

    async def get_account(self, user_id: str, account_id: int) -> Optional[AccountSnapshot]:
        async with self._lock:
            return self.accounts.get((user_id, account_id))

    async def get_risk_settings(self, user_id: str) -> Optional[RiskSettings]:
        async with self._lock:
            return self.settings.get(user_id)

    async def count_recent_proposals(self, user_id: str, account_id: int, since: datetime) -> int:
        async with self._lock:
            return sum(
                1
                for p in self.proposals.values()
                if p.user_id == user_id and p.account_id == account_id and p.created_at >= since
            )

    async def get_realized_pnl_today(self, user_id: str, account_id: int, since: datetime) -> Decimal:
        async with self._lock:
            return sum(
                (
                    t.realized_pnl
                    for t in self.trades
                    if t.user_id == user_id
                    and t.account_id == account_id
                    and t.closed_at is not None
                    and t.closed_at >= since
                    and t.realized_pnl is not None
                ),
                Decimal("0"),
            )

    async def count_open_positions(self, user_id: str, account_id: int) -> int:
        async with self._lock:
            return sum(
                1
                for t in self.trades
                if t.user_id == user_id and t.account_id == account_id and t.is_open
            )

    # ============ ProposalStore ============

    async def persist_proposal(self, proposal: Proposal) -> Proposal:
        async with self._lock:
            self.proposals[proposal.id] = proposal
            return proposal

    async def update_proposal_status(
        self,
        proposal_id: str,
        status: ProposalStatus,
        expected_status: Optional[ProposalStatus] = None,
        **fields,
    ) -> Optional[Proposal]:
        async with self._lock:
            current = self.proposals.get(proposal_id)
            if current is None:
                return None
            if expected_status is not None and current.status != expected_status:
                return None

            updated = current.model_copy(update={"status": status, **fields})
            self.proposals[proposal_id] = updated
            return updated

    async def claim_for_execution(self, proposal_id: str, started_at: datetime) -> Optional[Proposal]:
        async with self._lock:
            current = self.proposals.get(proposal_id)
            if (
                current is None
                or current.status != ProposalStatus.APPROVED
                or current.execution_started_at is not None
            ):
                return None

            claimed = current.model_copy(update={"execution_started_at": started_at})
            self.proposals[proposal_id] = claimed
            return claimed

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        async with self._lock:
            return self.proposals.get(proposal_id)

    async def list_proposals(
        self,
        user_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Proposal], int]:
        async with self._lock:
            matching = [
                p
                for p in self.proposals.values()
                if p.user_id == user_id and (status is None or p.status == status)
            ]
        matching.sort(key=lambda p: p.created_at, reverse=True)
        return matching[offset:offset + limit], len(matching)

    async def list_overdue_pending(self, now: datetime) -> list[Proposal]:
        async with self._lock:
            return [
                p
                for p in self.proposals.values()
                if p.status == ProposalStatus.PENDING and p.expires_at < now
            ]

    async def record_execution(self, record: ExecutionRecord) -> None:
        async with self._lock:
            self.executions.append(record)

    async def list_executions(self, proposal_id: str) -> list[ExecutionRecord]:
        async with self._lock:
            return [r for r in self.executions if r.proposal_id == proposal_id]

    async def record_trade_opened(
        self,
        proposal: Proposal,
        entry_price: Optional[float],
        opened_at: datetime,
    ) -> None:
        async with self._lock:
            self.trades.append(JournalTrade(
                account_id=proposal.account_id,
                user_id=proposal.user_id,
                symbol=proposal.symbol,
                size=proposal.size,
                entry_price=entry_price,
                opened_at=opened_at,
            ))

    async def log_system_event(
        self,
        user_id: str,
        event_type: str,
        proposal_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        async with self._lock:
            self.events.append(SystemEventEntry(user_id, event_type, proposal_id, payload or {}))
