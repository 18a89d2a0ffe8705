import asyncio
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.db.memory import InMemoryTradingStore
from app.schemas.iv_score import ScoreLevel
from app.schemas.proposal import Proposal, ProposalStatus
from app.schemas.risk import AccountSnapshot, RiskSettings
from app.schemas.safety import (
    BlindSpot,
    BlindSpotReport,
    IVGateScore,
    SignalType,
    Threat,
    ThreatHistory,
)
from app.services.broker import SimulatedBroker
from app.services.cache import MarketStateCache
from app.services.iv_scoring import IVScoringService
from app.services.proposals import ProposalLifecycleManager
from app.services.risk import RiskValidationService
from app.services.safety import CircuitBreaker, SafetySignalGateway, SignalCache, SignalProvider

# Wednesday 2026-01-14, 10:00 ET (New York session)
NY_MORNING = datetime(2026, 1, 14, 15, 0, tzinfo=timezone.utc)

USER_ID = "user-1"
ACCOUNT_ID = 101


class FakeClock:
    """Wall clock and monotonic clock that only move when told to."""

    def __init__(self, start: datetime):
        self.now = start
        self._monotonic = 1000.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, **kwargs) -> None:
        delta = timedelta(**kwargs)
        self.now += delta
        self._monotonic += delta.total_seconds()


class ScriptedSignalProvider(SignalProvider):
    """Safety collaborator whose answers, failures and delays are set per test."""

    def __init__(self):
        self.threats = ThreatHistory()
        self.blind_spots = BlindSpotReport()
        self.iv_gate = IVGateScore(score=9.0, level=ScoreLevel.HIGH)
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: Counter = Counter()

    @property
    def name(self) -> str:
        return "scripted"

    async def _respond(self, kind: str, value):
        self.calls[kind] += 1
        if kind in self.delays:
            await asyncio.sleep(self.delays[kind])
        if kind in self.failures:
            raise self.failures[kind]
        return value

    async def get_threat_history(self, user_id: str, active_only: bool = True) -> ThreatHistory:
        return await self._respond("threats", self.threats)

    async def get_blind_spots(self, user_id: str) -> BlindSpotReport:
        return await self._respond("blind_spots", self.blind_spots)

    async def get_iv_gate_score(self, user_id: str, symbol: str) -> IVGateScore:
        return await self._respond("iv_gate", self.iv_gate)

    def add_threat(self, severity: str, threat_type: str = "revenge_trading") -> None:
        self.threats = ThreatHistory(
            threats=[*self.threats.threats, Threat(type=threat_type, severity=severity)]
        )

    def add_blind_spot(self, name: str, category: str = "behavior", guard_railed: bool = False) -> None:
        self.blind_spots = BlindSpotReport(
            blind_spots=[
                *self.blind_spots.blind_spots,
                BlindSpot(name=name, category=category, is_guard_railed=guard_railed),
            ]
        )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NY_MORNING)


@pytest.fixture()
def app_settings() -> Settings:
    return Settings(
        _env_file=None,
        threat_timeout=0.2,
        blind_spot_timeout=0.2,
        iv_gate_timeout=0.2,
        data_timeout=1.0,
        broker_timeout=1.0,
    )


@pytest.fixture()
def provider() -> ScriptedSignalProvider:
    return ScriptedSignalProvider()


@pytest.fixture()
def gateway(provider, app_settings, clock) -> SafetySignalGateway:
    breakers = {
        signal_type: CircuitBreaker(
            signal_type.value,
            failure_threshold=app_settings.circuit_failure_threshold,
            cooldown_seconds=app_settings.circuit_cooldown_seconds,
            clock=clock.monotonic,
        )
        for signal_type in SignalType
    }
    return SafetySignalGateway(
        provider,
        config=app_settings,
        cache=SignalCache(clock=clock.monotonic),
        breakers=breakers,
    )


@pytest.fixture()
def store() -> InMemoryTradingStore:
    store = InMemoryTradingStore()
    store.add_account(AccountSnapshot(
        account_id=ACCOUNT_ID,
        user_id=USER_ID,
        balance=Decimal("50000.00"),
        buying_power=Decimal("25000.00"),
    ))
    store.set_risk_settings(USER_ID, RiskSettings(
        daily_loss_limit=Decimal("500.00"),
        max_position_size=5,
        max_trades_per_day=10,
    ))
    return store


@pytest.fixture()
def risk_service(gateway, store, app_settings, clock) -> RiskValidationService:
    return RiskValidationService(gateway, store, config=app_settings, clock=clock)


@pytest.fixture()
def broker() -> SimulatedBroker:
    return SimulatedBroker()


@pytest.fixture()
def manager(risk_service, store, gateway, broker, app_settings, clock) -> ProposalLifecycleManager:
    return ProposalLifecycleManager(
        risk=risk_service,
        store=store,
        gateway=gateway,
        broker=broker,
        config=app_settings,
        clock=clock,
    )


@pytest.fixture()
def draft_payload() -> dict:
    return {
        "strategy_name": "ORB Breakout",
        "account_id": ACCOUNT_ID,
        "symbol": "/ES",
        "side": "buy",
        "size": 2,
        "order_type": "limit",
        "limit_price": 6000.0,
        "stop_loss_ticks": 8,
        "take_profit_ticks": 16,
        "reasoning": "Opening range breakout above prior day high",
    }


@pytest.fixture()
def proposal_factory(clock):
    """Build a stored-proposal shape without going through risk validation."""

    def make(
        created_at: Optional[datetime] = None,
        status: ProposalStatus = ProposalStatus.PENDING,
        user_id: str = USER_ID,
        **overrides,
    ) -> Proposal:
        created_at = created_at or clock()
        fields = dict(
            id=str(uuid.uuid4()),
            user_id=user_id,
            account_id=ACCOUNT_ID,
            strategy_name="ORB Breakout",
            symbol="/ES",
            side="buy",
            size=1,
            order_type="limit",
            limit_price=6000.0,
            status=status,
            created_at=created_at,
            expires_at=created_at + timedelta(minutes=15),
        )
        fields.update(overrides)
        return Proposal(**fields)

    return make


@pytest.fixture()
def market_state() -> MarketStateCache:
    return MarketStateCache()


@pytest.fixture()
async def api_app(monkeypatch, manager, gateway, market_state) -> FastAPI:
    from app.main import app as main_app

    monkeypatch.setattr("app.services.proposals.service._service_instance", manager)
    monkeypatch.setattr("app.services.safety.gateway._gateway_instance", gateway)
    monkeypatch.setattr("app.services.cache.redis_client._market_state_cache", market_state)
    monkeypatch.setattr(
        "app.services.iv_scoring.service._service_instance",
        IVScoringService(market_state=market_state),
    )
    return main_app


@pytest.fixture()
async def client(api_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
