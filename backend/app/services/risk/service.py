"""
Risk Validation Pipeline Implementation

Fans out the safety lookups and the local risk checks concurrently, waits
for all of them, then decides on the complete snapshot.
PURE RULES - every block carries a readable reason.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional, TypeVar

from app.core.config import Settings, settings as default_settings
from app.core.market_hours import start_of_day_et
from app.db.store import TradingDataSource
from app.schemas.proposal import ProposalDraft
from app.schemas.risk import BlockReason, CheckResult, RiskMetrics, ValidationResult
from app.schemas.safety import IVGateScore, SignalOutcome
from app.services.risk.interface import RiskServiceInterface, RiskValidationInput
from app.services.safety.gateway import (
    BLIND_SPOT_UNAVAILABLE_REASON,
    THREAT_UNAVAILABLE_REASON,
    SafetySignalGateway,
    resolve_fail_closed,
    resolve_iv_gate,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FREQUENCY_WINDOW = timedelta(hours=24)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RiskValidationService(RiskServiceInterface):
    """
    Risk Validation Pipeline.

    Threat and blind-spot blocks are kill-switches and win outright.
    Frequency, standard risk and IV gate failures are combined.
    """

    def __init__(
        self,
        gateway: SafetySignalGateway,
        store: TradingDataSource,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.gateway = gateway
        self.store = store
        self.config = config or default_settings
        self._clock = clock

    @property
    def name(self) -> str:
        return "RiskValidationService"

    async def execute(self, input_data: RiskValidationInput) -> ValidationResult:
        return await self.validate(input_data.user_id, input_data.draft, input_data.now)

    async def _with_timeout(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.config.data_timeout)

    def requires_iv_gate(self, strategy_name: str) -> bool:
        lowered = strategy_name.lower()
        return any(marker.lower() in lowered for marker in self.config.volatility_strategy_markers)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def validate(
        self,
        user_id: str,
        draft: ProposalDraft,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        now = now or self._clock()
        needs_iv_gate = self.requires_iv_gate(draft.strategy_name)

        checks = [
            self.gateway.check_threats(user_id),
            self.gateway.check_blind_spots(user_id),
            self.check_trading_frequency(user_id, draft.account_id, now),
            self.check_standard_risk(user_id, draft, now),
        ]
        if needs_iv_gate:
            checks.append(self.gateway.get_iv_gate_score(user_id, draft.symbol))

        results = await asyncio.gather(*checks)
        threat_outcome, blind_spot_outcome, frequency, standard = results[:4]
        iv_outcome: Optional[SignalOutcome] = results[4] if needs_iv_gate else None

        threat = resolve_fail_closed(threat_outcome, THREAT_UNAVAILABLE_REASON)
        blind_spot = resolve_fail_closed(blind_spot_outcome, BLIND_SPOT_UNAVAILABLE_REASON)
        signals = [threat, blind_spot]

        if threat.blocked:
            return self._blocked(user_id, BlockReason.THREAT, [threat.reason], signals=signals)
        if blind_spot.blocked:
            return self._blocked(user_id, BlockReason.BLIND_SPOT, [blind_spot.reason], signals=signals)

        metrics = RiskMetrics(**{**frequency.metrics, **standard.metrics})
        reasons: list[str] = []
        block_reason: Optional[BlockReason] = None

        if not frequency.passed:
            reasons.extend(frequency.reasons)
            block_reason = BlockReason.TRADING_FREQUENCY
        if not standard.passed:
            reasons.extend(standard.reasons)
            block_reason = block_reason or BlockReason.RISK

        iv_gate: Optional[IVGateScore] = None
        if iv_outcome is not None:
            iv_gate = resolve_iv_gate(iv_outcome)
            metrics.iv_score = iv_gate.score
            if iv_gate.score < self.config.iv_gate_min_score:
                reasons.append(
                    f"VIX strategy entry criteria not met: IV score {iv_gate.score:.1f} "
                    f"< {self.config.iv_gate_min_score}"
                )
                block_reason = block_reason or BlockReason.IV_SCORE

        if reasons:
            return self._blocked(user_id, block_reason, reasons, metrics, iv_gate, signals)

        return ValidationResult(
            passed=True,
            risk_metrics=metrics,
            iv_gate=iv_gate,
            signals=signals,
        )

    @staticmethod
    def _blocked(
        user_id: str,
        block_reason: BlockReason,
        reasons: list[str],
        metrics: Optional[RiskMetrics] = None,
        iv_gate: Optional[IVGateScore] = None,
        signals: Optional[list] = None,
    ) -> ValidationResult:
        logger.warning(f"Proposal blocked for user {user_id} ({block_reason.value}): {'; '.join(reasons)}")
        return ValidationResult(
            passed=False,
            reasons=reasons,
            block_reason=block_reason,
            risk_metrics=metrics or RiskMetrics(),
            iv_gate=iv_gate,
            signals=signals or [],
        )

    # =========================================================================
    # LOCAL CHECKS
    # =========================================================================

    async def check_trading_frequency(
        self,
        user_id: str,
        account_id: int,
        now: datetime,
    ) -> CheckResult:
        try:
            risk_settings, count = await asyncio.gather(
                self._with_timeout(self.store.get_risk_settings(user_id)),
                self._with_timeout(
                    self.store.count_recent_proposals(user_id, account_id, now - FREQUENCY_WINDOW)
                ),
            )
        except Exception as e:
            # Frequency is a soft limit: allow when it cannot be counted
            logger.warning(f"Trading frequency check unavailable for user {user_id}, allowing: {e!r}")
            return CheckResult(passed=True)

        limit = risk_settings.max_trades_per_day if risk_settings else self.config.default_max_trades_per_day
        metrics = {"trades_in_window": count, "trade_limit": limit}

        if count >= limit:
            return CheckResult(
                passed=False,
                reasons=[f"Trading frequency limit exceeded: {count}/{limit} proposals in last 24 hours"],
                metrics=metrics,
            )
        return CheckResult(passed=True, metrics=metrics)

    async def check_standard_risk(
        self,
        user_id: str,
        draft: ProposalDraft,
        now: datetime,
    ) -> CheckResult:
        account_id = draft.account_id
        try:
            account, risk_settings, realized_pnl, open_positions = await asyncio.gather(
                self._with_timeout(self.store.get_account(user_id, account_id)),
                self._with_timeout(self.store.get_risk_settings(user_id)),
                self._with_timeout(
                    self.store.get_realized_pnl_today(user_id, account_id, start_of_day_et(now))
                ),
                self._with_timeout(self.store.count_open_positions(user_id, account_id)),
            )
        except Exception as e:
            logger.error(f"Risk validation failed for user {user_id}: {e!r}")
            return CheckResult(passed=False, reasons=["Risk validation error"])

        if account is None:
            return CheckResult(passed=False, reasons=["Account not found"])
        if risk_settings is None:
            return CheckResult(passed=False, reasons=["Risk settings not found"])

        reasons: list[str] = []

        # Rule 1: Daily loss limit (net realized loss since ET midnight)
        daily_loss = max(Decimal("0"), -Decimal(str(realized_pnl)))
        if daily_loss >= risk_settings.daily_loss_limit:
            reasons.append(
                f"Daily loss limit exceeded: ${daily_loss:.2f}/${risk_settings.daily_loss_limit:.2f}"
            )

        # Rule 2: Position size
        if draft.size > risk_settings.max_position_size:
            reasons.append(
                f"Position size exceeds limit: {draft.size}/{risk_settings.max_position_size} contracts"
            )

        # Rule 3: Buying power against a rough margin estimate
        entry_price = draft.entry_price
        estimated_margin = (
            Decimal(str(entry_price)) * draft.size * Decimal(str(self.config.margin_rate))
            if entry_price
            else Decimal("0")
        )
        if account.buying_power and estimated_margin > account.buying_power:
            reasons.append(
                f"Insufficient buying power: estimated {estimated_margin:.2f} > {account.buying_power:.2f}"
            )

        # Rule 4: Concurrent positions
        max_concurrent = self.config.max_concurrent_positions
        if open_positions >= max_concurrent:
            reasons.append(f"Maximum concurrent positions reached: {open_positions}/{max_concurrent}")

        return CheckResult(
            passed=not reasons,
            reasons=reasons,
            metrics={
                "daily_loss": daily_loss,
                "daily_loss_limit": risk_settings.daily_loss_limit,
                "position_size": draft.size,
                "max_position_size": risk_settings.max_position_size,
                "account_balance": account.balance,
                "buying_power": account.buying_power,
                "estimated_margin": estimated_margin,
                "concurrent_positions": open_positions,
            },
        )

    async def health_check(self) -> bool:
        return True


# Singleton instance
_service_instance: Optional[RiskValidationService] = None


def get_risk_service() -> RiskValidationService:
    """Get or create risk service instance backed by the SQL store."""
    global _service_instance
    if _service_instance is None:
        from app.db.repository import SqlTradingStore
        from app.services.safety.gateway import get_safety_gateway
        _service_instance = RiskValidationService(get_safety_gateway(), SqlTradingStore())
    return _service_instance
