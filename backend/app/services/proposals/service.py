"""
Proposal Lifecycle Manager Implementation

Owns every proposal state change. Status updates go through the store's
compare-and-set so two concurrent acknowledge/execute calls cannot both win.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings, settings as default_settings
from app.db.store import ProposalStore
from app.schemas.broker import (
    BracketSpec,
    BrokerOrderSide,
    BrokerOrderType,
    OrderRequest,
)
from app.schemas.proposal import (
    AcknowledgeDecision,
    AcknowledgeResult,
    ExecutionRecord,
    ExecutionResult,
    OrderType,
    Proposal,
    ProposalBlocked,
    ProposalCreated,
    ProposalDecision,
    ProposalDraft,
    ProposalList,
    ProposalStatus,
)
from app.schemas.risk import BlockReason
from app.services.base import (
    ExecutionFailure,
    LifecycleConflict,
    ProposalExpired,
    ProposalNotFound,
    ServiceError,
    ValidationError,
)
from app.services.broker.interface import BrokerClient
from app.services.proposals.interface import ProposalServiceInterface, ProposeTradeInput
from app.services.risk.interface import RiskServiceInterface
from app.services.safety.gateway import (
    BLIND_SPOT_UNAVAILABLE_REASON,
    SafetySignalGateway,
    resolve_fail_closed,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "Internal error during proposal creation - blocking for safety"
MAX_PAGE_SIZE = 100


# =============================================================================
# STATE MACHINE
# =============================================================================

VALID_TRANSITIONS: dict[ProposalStatus, set[ProposalStatus]] = {
    ProposalStatus.DRAFT: {ProposalStatus.PENDING},
    ProposalStatus.PENDING: {
        ProposalStatus.APPROVED,
        ProposalStatus.REJECTED,
        ProposalStatus.EXPIRED,
    },
    ProposalStatus.APPROVED: {ProposalStatus.EXECUTED, ProposalStatus.FAILED},
}


def can_transition(current: ProposalStatus, target: ProposalStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def is_terminal(status: ProposalStatus) -> bool:
    return status not in VALID_TRANSITIONS


# =============================================================================
# ORDER MAPPING
# =============================================================================

ORDER_TYPE_MAP = {
    OrderType.LIMIT: BrokerOrderType.LIMIT,
    OrderType.MARKET: BrokerOrderType.MARKET,
    OrderType.STOP: BrokerOrderType.STOP,
    OrderType.TRAILING_STOP: BrokerOrderType.TRAILING_STOP,
    OrderType.JOIN_BID: BrokerOrderType.JOIN_BID,
    OrderType.JOIN_ASK: BrokerOrderType.JOIN_ASK,
}


def build_order_request(proposal: Proposal, contract_id: str) -> OrderRequest:
    """Translate a proposal into the broker's order shape."""
    return OrderRequest(
        account_id=proposal.account_id,
        contract_id=contract_id,
        type=ORDER_TYPE_MAP[proposal.order_type],
        side=BrokerOrderSide.BID if proposal.side.is_buy else BrokerOrderSide.ASK,
        size=proposal.size,
        limit_price=proposal.limit_price,
        stop_price=proposal.stop_price,
        custom_tag=f"autopilot-{proposal.id}",
        stop_loss_bracket=(
            BracketSpec(ticks=proposal.stop_loss.ticks, type=BrokerOrderType.STOP)
            if proposal.stop_loss
            else None
        ),
        take_profit_bracket=(
            BracketSpec(ticks=proposal.take_profit.ticks, type=BrokerOrderType.LIMIT)
            if proposal.take_profit
            else None
        ),
    )


def _format_validation_errors(error: PydanticValidationError) -> list[str]:
    detail = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        detail.append(f"{location}: {err['msg']}" if location else err["msg"])
    return detail


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# SERVICE
# =============================================================================


class ProposalLifecycleManager(ProposalServiceInterface):
    """
    Proposal Lifecycle Manager.

    Creates proposals only after risk validation passes, then drives them
    through acknowledge / execute / expiry.
    """

    def __init__(
        self,
        risk: RiskServiceInterface,
        store: ProposalStore,
        gateway: SafetySignalGateway,
        broker: BrokerClient,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.risk = risk
        self.store = store
        self.gateway = gateway
        self.broker = broker
        self.config = config or default_settings
        self._clock = clock

    @property
    def name(self) -> str:
        return "ProposalLifecycleManager"

    async def execute(self, input_data: ProposeTradeInput) -> ProposalDecision:
        return await self.propose_trade(input_data.user_id, input_data.draft)

    # ============ Create ============

    async def propose_trade(
        self,
        user_id: str,
        draft: Union[ProposalDraft, dict[str, Any]],
    ) -> ProposalDecision:
        try:
            if not isinstance(draft, ProposalDraft):
                draft = ProposalDraft.model_validate(draft)
        except PydanticValidationError as e:
            detail = _format_validation_errors(e)
            logger.warning(f"Proposal blocked for user {user_id} (validation): {'; '.join(detail)}")
            return ProposalBlocked(reason=BlockReason.VALIDATION, detail=detail)

        try:
            now = self._clock()
            validation = await self.risk.validate(user_id, draft, now)

            if not validation.passed:
                await self.store.log_system_event(
                    user_id,
                    "proposal_blocked",
                    payload={
                        "reason": validation.block_reason.value,
                        "detail": validation.reasons,
                        "strategy": draft.strategy_name,
                        "symbol": draft.symbol,
                    },
                )
                return ProposalBlocked(reason=validation.block_reason, detail=validation.reasons)

            proposal = Proposal(
                id=str(uuid.uuid4()),
                user_id=user_id,
                account_id=draft.account_id,
                strategy_name=draft.strategy_name,
                symbol=draft.symbol.upper(),
                contract_id=draft.contract_id,
                side=draft.side,
                size=draft.size,
                order_type=draft.order_type,
                limit_price=draft.limit_price,
                stop_price=draft.stop_price,
                stop_loss=(
                    {"ticks": draft.stop_loss_ticks, "type": "Stop"} if draft.stop_loss_ticks else None
                ),
                take_profit=(
                    {"ticks": draft.take_profit_ticks, "type": "Limit"} if draft.take_profit_ticks else None
                ),
                status=ProposalStatus.PENDING,
                risk_metrics=validation.risk_metrics,
                reasoning=draft.reasoning,
                iv_score=validation.iv_gate.score if validation.iv_gate else None,
                created_at=now,
                expires_at=now + timedelta(minutes=self.config.proposal_ttl_minutes),
            )
            await self.store.persist_proposal(proposal)
            await self.store.log_system_event(
                user_id,
                "proposal_created",
                proposal.id,
                {"strategy": proposal.strategy_name, "symbol": proposal.symbol, "size": proposal.size},
            )
        except Exception:
            # Never approve on an unexpected error
            logger.exception(f"Proposal creation failed for user {user_id}")
            return ProposalBlocked(reason=BlockReason.INTERNAL_ERROR, detail=[INTERNAL_ERROR_DETAIL])

        logger.info(
            f"Proposal {proposal.id} created: {proposal.side.value} {proposal.size} {proposal.symbol} "
            f"({proposal.strategy_name}), expires {proposal.expires_at.isoformat()}"
        )
        return ProposalCreated(
            proposal_id=proposal.id,
            status=proposal.status,
            risk_metrics=proposal.risk_metrics,
            expires_at=proposal.expires_at,
        )

    # ============ Transitions ============

    async def _get_owned(self, user_id: str, proposal_id: str) -> Proposal:
        proposal = await self.store.get_proposal(proposal_id)
        if proposal is None or proposal.user_id != user_id:
            raise ProposalNotFound(self.name, "Proposal not found", {"proposal_id": proposal_id})
        return proposal

    async def _transition(self, proposal: Proposal, target: ProposalStatus, **fields) -> Proposal:
        if not can_transition(proposal.status, target):
            raise LifecycleConflict(
                self.name,
                f"Cannot move proposal from {proposal.status.value} to {target.value}",
                status=proposal.status.value,
            )

        updated = await self.store.update_proposal_status(
            proposal.id, target, expected_status=proposal.status, **fields
        )
        if updated is None:
            current = await self.store.get_proposal(proposal.id)
            status = current.status.value if current else "missing"
            raise LifecycleConflict(self.name, f"Proposal is already {status}", status=status)

        logger.info(f"Proposal {proposal.id}: {proposal.status.value} -> {target.value}")
        return updated

    async def acknowledge_proposal(
        self,
        user_id: str,
        proposal_id: str,
        decision: AcknowledgeDecision,
    ) -> AcknowledgeResult:
        proposal = await self._get_owned(user_id, proposal_id)
        if proposal.status != ProposalStatus.PENDING:
            raise LifecycleConflict(
                self.name,
                f"Proposal is already {proposal.status.value}",
                status=proposal.status.value,
            )

        now = self._clock()
        if now > proposal.expires_at:
            await self._transition(proposal, ProposalStatus.EXPIRED)
            await self.store.log_system_event(user_id, "proposal_expired", proposal_id)
            raise ProposalExpired(self.name, "Proposal has expired", status=ProposalStatus.EXPIRED.value)

        decision = AcknowledgeDecision(decision)

        if decision == AcknowledgeDecision.REJECT:
            await self._transition(
                proposal,
                ProposalStatus.REJECTED,
                acknowledged_at=now,
                rejection_reason="Rejected by user",
            )
            await self.gateway.invalidate_user(user_id)
            await self.store.log_system_event(user_id, "proposal_rejected", proposal_id)
            return AcknowledgeResult(proposal_id=proposal_id, status=ProposalStatus.REJECTED)

        # Safety picture may have changed since creation
        age_seconds = (now - proposal.created_at).total_seconds()
        if age_seconds > self.config.approval_recheck_seconds:
            outcome = await self.gateway.check_blind_spots(user_id)
            signal = resolve_fail_closed(outcome, BLIND_SPOT_UNAVAILABLE_REASON)
            if signal.blocked:
                await self._transition(
                    proposal,
                    ProposalStatus.REJECTED,
                    acknowledged_at=now,
                    rejection_reason=signal.reason,
                )
                await self.gateway.invalidate_user(user_id)
                logger.warning(f"Approval of proposal {proposal_id} blocked: {signal.reason}")
                await self.store.log_system_event(
                    user_id, "proposal_rejected", proposal_id, {"reason": signal.reason}
                )
                return AcknowledgeResult(
                    proposal_id=proposal_id,
                    status=ProposalStatus.REJECTED,
                    reason=signal.reason,
                )

        await self._transition(proposal, ProposalStatus.APPROVED, acknowledged_at=now)
        await self.store.log_system_event(user_id, "proposal_approved", proposal_id)
        return AcknowledgeResult(proposal_id=proposal_id, status=ProposalStatus.APPROVED)

    # ============ Execute ============

    async def _resolve_contract(self, symbol: str) -> str:
        contracts = await asyncio.wait_for(
            self.broker.search_contracts(symbol),
            timeout=self.config.broker_timeout,
        )
        if not contracts:
            raise ExecutionFailure(self.name, f"No contract found for {symbol}")
        return contracts[0].contract_id

    async def execute_proposal(self, user_id: str, proposal_id: str) -> ExecutionResult:
        proposal = await self._get_owned(user_id, proposal_id)
        if proposal.status != ProposalStatus.APPROVED:
            raise LifecycleConflict(
                self.name,
                f"Proposal must be approved first (current: {proposal.status.value})",
                status=proposal.status.value,
            )

        # At most one caller gets past the claim to the broker
        claimed = await self.store.claim_for_execution(proposal_id, self._clock())
        if claimed is None:
            current = await self.store.get_proposal(proposal_id)
            status = current.status.value if current else "missing"
            raise LifecycleConflict(self.name, "Proposal is already being executed", status=status)
        proposal = claimed

        contract_id = proposal.contract_id
        order: Optional[OrderRequest] = None
        try:
            if not contract_id:
                contract_id = await self._resolve_contract(proposal.symbol)
            order = build_order_request(proposal, contract_id)
            result = await asyncio.wait_for(
                self.broker.place_order(order),
                timeout=self.config.broker_timeout,
            )
        except Exception as e:
            # No automatic retry: a human must re-propose
            message = e.message if isinstance(e, ServiceError) else (str(e) or type(e).__name__)
            await self._record_failure(proposal, contract_id, order, message)
            raise ExecutionFailure(
                self.name, message, {"proposal_id": proposal_id, "broker": self.broker.name}
            ) from e

        now = self._clock()
        executed = await self._transition(
            proposal,
            ProposalStatus.EXECUTED,
            executed_at=now,
            external_order_id=result.order_id,
            contract_id=contract_id,
        )
        await self.store.record_execution(ExecutionRecord(
            proposal_id=proposal_id,
            user_id=user_id,
            account_id=proposal.account_id,
            contract_id=contract_id,
            order_id=result.order_id,
            status=ProposalStatus.EXECUTED,
            order_payload=order.model_dump(mode="json"),
            created_at=now,
        ))
        await self.store.record_trade_opened(executed, proposal.limit_price or proposal.stop_price, now)
        await self.store.log_system_event(
            user_id, "proposal_executed", proposal_id, {"order_id": result.order_id}
        )

        logger.info(f"Proposal {proposal_id} executed: order {result.order_id} on {contract_id}")
        return ExecutionResult(
            proposal_id=proposal_id,
            status=executed.status,
            order_id=result.order_id,
            contract_id=contract_id,
            executed_at=now,
        )

    async def _record_failure(
        self,
        proposal: Proposal,
        contract_id: Optional[str],
        order: Optional[OrderRequest],
        message: str,
    ) -> None:
        now = self._clock()
        logger.warning(f"Execution of proposal {proposal.id} failed: {message}")

        updated = await self.store.update_proposal_status(
            proposal.id,
            ProposalStatus.FAILED,
            expected_status=ProposalStatus.APPROVED,
            error_message=message,
        )
        if updated is None:
            logger.warning(f"Proposal {proposal.id} changed state during execution; failure not recorded on it")

        await self.store.record_execution(ExecutionRecord(
            proposal_id=proposal.id,
            user_id=proposal.user_id,
            account_id=proposal.account_id,
            contract_id=contract_id,
            status=ProposalStatus.FAILED,
            order_payload=order.model_dump(mode="json") if order else {},
            error_message=message,
            created_at=now,
        ))
        await self.store.log_system_event(
            proposal.user_id, "proposal_failed", proposal.id, {"error": message}
        )

    # ============ Queries ============

    async def get_proposal(self, user_id: str, proposal_id: str) -> Proposal:
        return await self._get_owned(user_id, proposal_id)

    async def list_proposals(
        self,
        user_id: str,
        status: Optional[ProposalStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ProposalList:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(self.name, f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError(self.name, "offset must not be negative")

        proposals, total = await self.store.list_proposals(user_id, status, limit, offset)
        return ProposalList(proposals=proposals, total=total, limit=limit, offset=offset)

    async def get_pending_proposals(self, user_id: str) -> list[Proposal]:
        now = self._clock()
        proposals, _ = await self.store.list_proposals(user_id, ProposalStatus.PENDING, MAX_PAGE_SIZE, 0)
        return [p for p in proposals if p.expires_at >= now]

    async def expire_stale_proposals(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        expired = 0
        for proposal in await self.store.list_overdue_pending(now):
            updated = await self.store.update_proposal_status(
                proposal.id, ProposalStatus.EXPIRED, expected_status=ProposalStatus.PENDING
            )
            if updated is None:
                continue
            expired += 1
            await self.store.log_system_event(proposal.user_id, "proposal_expired", proposal.id)

        if expired:
            logger.info(f"Expired {expired} stale proposals")
        return expired

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        await self.broker.close()


# Singleton instance
_service_instance: Optional[ProposalLifecycleManager] = None


def get_proposal_service() -> ProposalLifecycleManager:
    """Get or create the lifecycle manager wired from settings."""
    global _service_instance
    if _service_instance is None:
        from app.db.repository import SqlTradingStore
        from app.services.broker import build_broker_client
        from app.services.risk.service import get_risk_service
        from app.services.safety.gateway import get_safety_gateway

        store = SqlTradingStore()
        gateway = get_safety_gateway()
        _service_instance = ProposalLifecycleManager(
            risk=get_risk_service(),
            store=store,
            gateway=gateway,
            broker=build_broker_client(default_settings),
        )
    return _service_instance


async def close_proposal_service() -> None:
    global _service_instance
    if _service_instance is not None:
        await _service_instance.close()
        _service_instance = None
