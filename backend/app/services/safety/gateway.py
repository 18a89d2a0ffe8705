"""
Safety Signal Gateway

Wraps the threat-history, blind-spot and IV-gate collaborators behind one
protected call path: cache first, then circuit breaker, then a timed call.

Outcomes are tri-state (ok / blocked / unavailable). Whether "unavailable"
blocks trading is decided by the resolve_* policy functions below.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.config import Settings, settings as default_settings
from app.schemas.safety import (
    NEUTRAL_IV_GATE_SCORE,
    RISK_BLIND_SPOT_CATEGORY,
    BlindSpotReport,
    CircuitState,
    FetchResult,
    IVGateScore,
    SafetySignal,
    SignalOutcome,
    SignalStatus,
    SignalType,
    ThreatHistory,
    ThreatSeverity,
)
from app.services.safety.circuit_breaker import CircuitBreaker
from app.services.safety.interface import SignalProvider
from app.services.safety.signal_cache import CacheKey, SignalCache

logger = logging.getLogger(__name__)

THREAT_UNAVAILABLE_REASON = "Unable to verify threat status - blocking for safety"
BLIND_SPOT_UNAVAILABLE_REASON = "Unable to verify blind spots - blocking for safety"
HIGH_THREAT_LIMIT = 2


# =============================================================================
# RULES
# =============================================================================


def evaluate_threats(history: ThreatHistory) -> Optional[str]:
    """Block on any active critical threat, or two or more active high ones."""
    active = [t for t in history.threats if t.is_active]

    for threat in active:
        if threat.severity == ThreatSeverity.CRITICAL:
            return f"Critical threat detected: {threat.type}"

    high = [t for t in active if t.severity == ThreatSeverity.HIGH]
    if len(high) >= HIGH_THREAT_LIMIT:
        return f"Multiple high-severity threats detected ({len(high)})"
    return None


def evaluate_blind_spots(report: BlindSpotReport) -> Optional[str]:
    """Block on an active guard-railed blind spot or an active risk-category one."""
    for spot in report.blind_spots:
        if not spot.is_active:
            continue
        if spot.is_guard_railed:
            return f"Guard-railed blind spot active: {spot.name}"
        if spot.category.lower() == RISK_BLIND_SPOT_CATEGORY:
            return f"Risk category blind spot active: {spot.name}"
    return None


# =============================================================================
# FAIL-OPEN / FAIL-CLOSED POLICY
# =============================================================================


def resolve_fail_closed(outcome: SignalOutcome, unavailable_reason: str) -> SafetySignal:
    """Unavailable counts as blocked."""
    if outcome.status == SignalStatus.UNAVAILABLE:
        return SafetySignal(
            signal_type=outcome.signal_type,
            blocked=True,
            reason=unavailable_reason,
        )
    return SafetySignal(
        signal_type=outcome.signal_type,
        blocked=outcome.status == SignalStatus.BLOCKED,
        reason=outcome.reason,
        payload=outcome.payload,
        fetched_at=outcome.fetched_at,
    )


def resolve_iv_gate(outcome: SignalOutcome) -> IVGateScore:
    """Unavailable falls back to the neutral score."""
    if outcome.status == SignalStatus.OK and isinstance(outcome.payload, IVGateScore):
        return outcome.payload
    return NEUTRAL_IV_GATE_SCORE


# =============================================================================
# GATEWAY
# =============================================================================


class SafetySignalGateway:
    """
    Protected access to the safety collaborators.

    One circuit breaker per dependency, one shared TTL cache keyed by
    (signal type, user id[, symbol]).
    """

    def __init__(
        self,
        provider: SignalProvider,
        config: Optional[Settings] = None,
        cache: Optional[SignalCache] = None,
        breakers: Optional[Dict[SignalType, CircuitBreaker]] = None,
    ):
        self.provider = provider
        self.config = config or default_settings
        self.cache = cache if cache is not None else SignalCache(stale_horizon=self.config.signal_stale_horizon)
        self.breakers = breakers if breakers is not None else {
            signal_type: CircuitBreaker(
                name=signal_type.value,
                failure_threshold=self.config.circuit_failure_threshold,
                cooldown_seconds=self.config.circuit_cooldown_seconds,
            )
            for signal_type in SignalType
        }

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def call_with_protection(
        self,
        key: CacheKey,
        ttl: float,
        fetcher: Callable[[], Awaitable[Any]],
        breaker: CircuitBreaker,
        timeout: float,
    ) -> FetchResult:
        """
        Cache-first protected call.

        A fresh cache entry is returned without calling out. Otherwise the
        breaker decides whether to call; a failed call (error or timeout) is
        recorded against the breaker. A stale entry is only served while the
        breaker is open.
        """
        entry = await self.cache.get_fresh(key)
        if entry is not None:
            return FetchResult(ok=True, payload=entry.value, fetched_at=entry.fetched_at)

        if not await breaker.allow_request():
            return await self._stale_or_unavailable(key, f"circuit {breaker.name} open")

        try:
            payload = await asyncio.wait_for(fetcher(), timeout=timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {timeout:g}s"
        except asyncio.CancelledError:
            breaker.release_trial()
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
        else:
            fetched_at = self._now()
            await breaker.record_success()
            await self.cache.set(key, payload, ttl, fetched_at)
            return FetchResult(ok=True, payload=payload, fetched_at=fetched_at)

        await breaker.record_failure()
        logger.warning(f"Safety dependency {breaker.name} failed: {error}")

        if breaker.is_open:
            return await self._stale_or_unavailable(key, error)
        return FetchResult(ok=False, error=error)

    async def _stale_or_unavailable(self, key: CacheKey, error: str) -> FetchResult:
        entry = await self.cache.get_stale(key)
        if entry is not None:
            logger.info(f"Serving stale {key[0]} signal fetched at {entry.fetched_at.isoformat()}")
            return FetchResult(ok=True, payload=entry.value, fetched_at=entry.fetched_at, stale=True)
        return FetchResult(ok=False, error=error)

    # ============ Signals ============

    async def check_threats(self, user_id: str) -> SignalOutcome:
        result = await self.call_with_protection(
            key=(SignalType.THREATS.value, user_id),
            ttl=self.config.threat_cache_ttl,
            fetcher=lambda: self.provider.get_threat_history(user_id, active_only=True),
            breaker=self.breakers[SignalType.THREATS],
            timeout=self.config.threat_timeout,
        )
        return self._outcome(SignalType.THREATS, result, evaluate_threats)

    async def check_blind_spots(self, user_id: str) -> SignalOutcome:
        result = await self.call_with_protection(
            key=(SignalType.BLIND_SPOTS.value, user_id),
            ttl=self.config.blind_spot_cache_ttl,
            fetcher=lambda: self.provider.get_blind_spots(user_id),
            breaker=self.breakers[SignalType.BLIND_SPOTS],
            timeout=self.config.blind_spot_timeout,
        )
        return self._outcome(SignalType.BLIND_SPOTS, result, evaluate_blind_spots)

    async def get_iv_gate_score(self, user_id: str, symbol: str) -> SignalOutcome:
        result = await self.call_with_protection(
            key=(SignalType.IV_GATE.value, user_id, symbol.upper()),
            ttl=self.config.iv_gate_cache_ttl,
            fetcher=lambda: self.provider.get_iv_gate_score(user_id, symbol),
            breaker=self.breakers[SignalType.IV_GATE],
            timeout=self.config.iv_gate_timeout,
        )
        return self._outcome(SignalType.IV_GATE, result, None)

    @staticmethod
    def _outcome(
        signal_type: SignalType,
        result: FetchResult,
        rule: Optional[Callable[[Any], Optional[str]]],
    ) -> SignalOutcome:
        if not result.ok:
            return SignalOutcome(
                signal_type=signal_type,
                status=SignalStatus.UNAVAILABLE,
                reason=result.error,
            )

        reason = rule(result.payload) if rule else None
        return SignalOutcome(
            signal_type=signal_type,
            status=SignalStatus.BLOCKED if reason else SignalStatus.OK,
            reason=reason,
            payload=result.payload,
            fetched_at=result.fetched_at,
            stale=result.stale,
        )

    # ============ Maintenance ============

    async def invalidate_user(self, user_id: str) -> None:
        """Drop cached threat and blind-spot signals for a user."""
        removed = await self.cache.invalidate(
            (SignalType.THREATS.value, user_id),
            (SignalType.BLIND_SPOTS.value, user_id),
        )
        logger.info(f"Invalidated {removed} cached safety signals for user {user_id}")

    def circuit_states(self) -> list[CircuitState]:
        return [breaker.snapshot() for breaker in self.breakers.values()]

    async def close(self) -> None:
        await self.provider.close()


# Singleton instance
_gateway_instance: Optional[SafetySignalGateway] = None


def get_safety_gateway() -> SafetySignalGateway:
    """Get or create the safety gateway, with the provider picked from settings."""
    global _gateway_instance
    if _gateway_instance is None:
        from app.services.safety.providers import build_signal_provider
        _gateway_instance = SafetySignalGateway(build_signal_provider(default_settings))
    return _gateway_instance


async def close_safety_gateway() -> None:
    global _gateway_instance
    if _gateway_instance is not None:
        await _gateway_instance.close()
        _gateway_instance = None
