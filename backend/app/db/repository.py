"""
SQLAlchemy trading store.

Implements the storage contracts on the autopilot tables. Every method runs
in its own short transaction. Datetimes are stored as UTC.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.database import AsyncSessionLocal, session_scope
from app.db.models import (
    AutopilotExecution,
    AutopilotProposal,
    AutopilotSettings,
    BrokerAccount,
    SystemEvent,
    Trade,
)
from app.db.store import TradingStore
from app.schemas.proposal import BracketOrder, ExecutionRecord, Proposal, ProposalStatus
from app.schemas.risk import AccountSnapshot, RiskMetrics, RiskSettings

logger = logging.getLogger(__name__)


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; store and compare everything as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_proposal(row: AutopilotProposal) -> Proposal:
    return Proposal(
        id=row.id,
        user_id=row.user_id,
        account_id=row.account_id,
        strategy_name=row.strategy_name,
        symbol=row.symbol,
        contract_id=row.contract_id,
        side=row.side,
        size=row.size,
        order_type=row.order_type,
        limit_price=row.limit_price,
        stop_price=row.stop_price,
        stop_loss=BracketOrder.model_validate(row.stop_loss) if row.stop_loss else None,
        take_profit=BracketOrder.model_validate(row.take_profit) if row.take_profit else None,
        status=row.status,
        risk_metrics=RiskMetrics.model_validate(row.risk_metrics or {}),
        reasoning=row.reasoning,
        iv_score=row.iv_score,
        created_at=_utc(row.created_at),
        expires_at=_utc(row.expires_at),
        acknowledged_at=_utc(row.acknowledged_at),
        execution_started_at=_utc(row.execution_started_at),
        executed_at=_utc(row.executed_at),
        external_order_id=row.external_order_id,
        error_message=row.error_message,
        rejection_reason=row.rejection_reason,
    )


def _to_execution(row: AutopilotExecution) -> ExecutionRecord:
    return ExecutionRecord(
        proposal_id=row.proposal_id,
        user_id=row.user_id,
        account_id=row.account_id,
        contract_id=row.contract_id,
        order_id=row.order_id,
        status=row.status,
        order_payload=row.order_payload or {},
        error_message=row.error_message,
        created_at=_utc(row.created_at),
    )


class SqlTradingStore(TradingStore):
    """Trading store on SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self._session_factory = session_factory

    def _session(self):
        return session_scope(self._session_factory)

    # ============ TradingDataSource ============

    async def get_account(self, user_id: str, account_id: int) -> Optional[AccountSnapshot]:
        async with self._session() as session:
            result = await session.execute(
                select(BrokerAccount).where(
                    BrokerAccount.id == account_id,
                    BrokerAccount.user_id == user_id,
                    BrokerAccount.is_active.is_(True),
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return AccountSnapshot(
                account_id=row.id,
                user_id=row.user_id,
                balance=Decimal(str(row.balance)),
                buying_power=Decimal(str(row.buying_power)),
                margin_used=Decimal(str(row.margin_used or 0)),
            )

    async def get_risk_settings(self, user_id: str) -> Optional[RiskSettings]:
        async with self._session() as session:
            result = await session.execute(
                select(AutopilotSettings).where(AutopilotSettings.user_id == user_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return RiskSettings(
                daily_loss_limit=Decimal(str(row.daily_loss_limit)),
                max_position_size=row.max_position_size,
                require_stop_loss=row.require_stop_loss,
                max_trades_per_day=row.max_trades_per_day,
            )

    async def count_recent_proposals(self, user_id: str, account_id: int, since: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count(AutopilotProposal.id)).where(
                    AutopilotProposal.user_id == user_id,
                    AutopilotProposal.account_id == account_id,
                    AutopilotProposal.created_at >= _utc(since),
                )
            )
            return int(result.scalar_one())

    async def get_realized_pnl_today(self, user_id: str, account_id: int, since: datetime) -> Decimal:
        async with self._session() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(Trade.realized_pnl), 0)).where(
                    Trade.user_id == user_id,
                    Trade.account_id == account_id,
                    Trade.closed_at.is_not(None),
                    Trade.closed_at >= _utc(since),
                )
            )
            return Decimal(str(result.scalar_one()))

    async def count_open_positions(self, user_id: str, account_id: int) -> int:
        async with self._session() as session:
            result = await session.execute(
                select(func.count(Trade.id)).where(
                    Trade.user_id == user_id,
                    Trade.account_id == account_id,
                    Trade.closed_at.is_(None),
                )
            )
            return int(result.scalar_one())

    # ============ ProposalStore ============

    async def persist_proposal(self, proposal: Proposal) -> Proposal:
        async with self._session() as session:
            session.add(AutopilotProposal(
                id=proposal.id,
                user_id=proposal.user_id,
                account_id=proposal.account_id,
                strategy_name=proposal.strategy_name,
                symbol=proposal.symbol,
                contract_id=proposal.contract_id,
                side=proposal.side.value,
                size=proposal.size,
                order_type=proposal.order_type.value,
                limit_price=proposal.limit_price,
                stop_price=proposal.stop_price,
                stop_loss=proposal.stop_loss.model_dump() if proposal.stop_loss else None,
                take_profit=proposal.take_profit.model_dump() if proposal.take_profit else None,
                status=proposal.status.value,
                risk_metrics=proposal.risk_metrics.model_dump(mode="json"),
                reasoning=proposal.reasoning,
                iv_score=proposal.iv_score,
                created_at=_utc(proposal.created_at),
                expires_at=_utc(proposal.expires_at),
            ))
        return proposal

    async def update_proposal_status(
        self,
        proposal_id: str,
        status: ProposalStatus,
        expected_status: Optional[ProposalStatus] = None,
        **fields,
    ) -> Optional[Proposal]:
        values = {
            key: _utc(value) if isinstance(value, datetime) else value
            for key, value in fields.items()
        }
        values["status"] = status.value

        async with self._session() as session:
            stmt = update(AutopilotProposal).where(AutopilotProposal.id == proposal_id)
            if expected_status is not None:
                stmt = stmt.where(AutopilotProposal.status == expected_status.value)
            result = await session.execute(stmt.values(**values))
            if result.rowcount == 0:
                return None

            row = await session.get(AutopilotProposal, proposal_id, populate_existing=True)
            return _to_proposal(row)

    async def claim_for_execution(self, proposal_id: str, started_at: datetime) -> Optional[Proposal]:
        async with self._session() as session:
            result = await session.execute(
                update(AutopilotProposal)
                .where(
                    AutopilotProposal.id == proposal_id,
                    AutopilotProposal.status == ProposalStatus.APPROVED.value,
                    AutopilotProposal.execution_started_at.is_(None),
                )
                .values(execution_started_at=_utc(started_at))
            )
            if result.rowcount == 0:
                return None

            row = await session.get(AutopilotProposal, proposal_id, populate_existing=True)
            return _to_proposal(row)

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        async with self._session() as session:
            row = await session.get(AutopilotProposal, proposal_id)
            return _to_proposal(row) if row else None

    async def list_proposals(
        self,
        user_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Proposal], int]:
        conditions = [AutopilotProposal.user_id == user_id]
        if status is not None:
            conditions.append(AutopilotProposal.status == status.value)

        async with self._session() as session:
            total = await session.execute(select(func.count(AutopilotProposal.id)).where(*conditions))
            result = await session.execute(
                select(AutopilotProposal)
                .where(*conditions)
                .order_by(AutopilotProposal.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_to_proposal(row) for row in result.scalars().all()], int(total.scalar_one())

    async def list_overdue_pending(self, now: datetime) -> list[Proposal]:
        async with self._session() as session:
            result = await session.execute(
                select(AutopilotProposal).where(
                    AutopilotProposal.status == ProposalStatus.PENDING.value,
                    AutopilotProposal.expires_at < _utc(now),
                )
            )
            return [_to_proposal(row) for row in result.scalars().all()]

    async def record_execution(self, record: ExecutionRecord) -> None:
        async with self._session() as session:
            session.add(AutopilotExecution(
                proposal_id=record.proposal_id,
                user_id=record.user_id,
                account_id=record.account_id,
                contract_id=record.contract_id,
                order_id=record.order_id,
                status=record.status.value,
                order_payload=record.order_payload,
                error_message=record.error_message,
                created_at=_utc(record.created_at),
            ))

    async def list_executions(self, proposal_id: str) -> list[ExecutionRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(AutopilotExecution)
                .where(AutopilotExecution.proposal_id == proposal_id)
                .order_by(AutopilotExecution.created_at)
            )
            return [_to_execution(row) for row in result.scalars().all()]

    async def record_trade_opened(
        self,
        proposal: Proposal,
        entry_price: Optional[float],
        opened_at: datetime,
    ) -> None:
        async with self._session() as session:
            session.add(Trade(
                user_id=proposal.user_id,
                account_id=proposal.account_id,
                symbol=proposal.symbol,
                side=proposal.side.value,
                size=proposal.size,
                entry_price=entry_price or 0.0,
                opened_at=_utc(opened_at),
                status="OPEN",
                proposal_id=proposal.id,
            ))

    async def log_system_event(
        self,
        user_id: str,
        event_type: str,
        proposal_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> None:
        try:
            async with self._session() as session:
                session.add(SystemEvent(
                    user_id=user_id,
                    event_type=event_type,
                    proposal_id=proposal_id,
                    payload=payload or {},
                ))
        except Exception as e:
            # Audit logging must not break the lifecycle
            logger.error(f"Failed to log system event {event_type}: {e}")
