"""
Safety Signal Providers

- StubSignalProvider: no threats, no blind spots, neutral IV gate
- HttpSignalProvider: live collaborator over HTTP (aiohttp)
- EngineGateSignalProvider: delegates the IV gate to the local scoring engine

Selected from settings at construction time by build_signal_provider().
"""

import logging
from typing import Any, Optional

import aiohttp

from app.core.config import Settings
from app.schemas.iv_score import ScoreLevel
from app.schemas.safety import BlindSpotReport, IVGateScore, ThreatHistory
from app.services.base import ExternalAPIError
from app.services.iv_scoring.interface import IVScoringServiceInterface
from app.services.safety.interface import SignalProvider

logger = logging.getLogger(__name__)


class StubSignalProvider(SignalProvider):
    """Offline provider. Never blocks, gate score is neutral."""

    @property
    def name(self) -> str:
        return "stub"

    async def get_threat_history(self, user_id: str, active_only: bool = True) -> ThreatHistory:
        return ThreatHistory(threats=[])

    async def get_blind_spots(self, user_id: str) -> BlindSpotReport:
        return BlindSpotReport(blind_spots=[])

    async def get_iv_gate_score(self, user_id: str, symbol: str) -> IVGateScore:
        return IVGateScore(score=5.0, level=ScoreLevel.MEDIUM, source="stub")


class HttpSignalProvider(SignalProvider):
    """
    Live provider.

    GET {base}/users/{user_id}/threats?activeOnly=true  -> {"threats": [...]}
    GET {base}/users/{user_id}/blind-spots              -> {"blindSpots": [...]}
    GET {base}/users/{user_id}/iv-score?symbol=/ES      -> {"score": 7.2, "level": "good"}
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def name(self) -> str:
        return "http"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active HTTP session."""
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            # Per-call deadlines are enforced by the gateway
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=10),
                headers=headers,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"

        async with session.get(url, params=params) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise ExternalAPIError(
                    "HttpSignalProvider",
                    f"GET {path} returned {resp.status}",
                    {"body": body[:500]},
                )
            return await resp.json()

    async def get_threat_history(self, user_id: str, active_only: bool = True) -> ThreatHistory:
        data = await self._get(
            f"/users/{user_id}/threats",
            params={"activeOnly": str(active_only).lower()},
        )
        return ThreatHistory.model_validate(data)

    async def get_blind_spots(self, user_id: str) -> BlindSpotReport:
        data = await self._get(f"/users/{user_id}/blind-spots")
        return BlindSpotReport.model_validate(data)

    async def get_iv_gate_score(self, user_id: str, symbol: str) -> IVGateScore:
        data = await self._get(f"/users/{user_id}/iv-score", params={"symbol": symbol})
        return IVGateScore(score=data["score"], level=data["level"], source="http")


class EngineGateSignalProvider(SignalProvider):
    """Threats and blind spots from `base`; the IV gate from the local scoring engine."""

    def __init__(self, base: SignalProvider, iv_scoring: IVScoringServiceInterface):
        self.base = base
        self.iv_scoring = iv_scoring

    @property
    def name(self) -> str:
        return f"{self.base.name}+engine"

    async def get_threat_history(self, user_id: str, active_only: bool = True) -> ThreatHistory:
        return await self.base.get_threat_history(user_id, active_only)

    async def get_blind_spots(self, user_id: str) -> BlindSpotReport:
        return await self.base.get_blind_spots(user_id)

    async def get_iv_gate_score(self, user_id: str, symbol: str) -> IVGateScore:
        return await self.iv_scoring.gate_score(symbol)

    async def close(self) -> None:
        await self.base.close()


def build_signal_provider(
    config: Settings,
    iv_scoring: Optional[IVScoringServiceInterface] = None,
) -> SignalProvider:
    """Pick the provider implementation from configuration."""
    if config.signal_provider == "live":
        provider: SignalProvider = HttpSignalProvider(config.signal_api_base_url, config.signal_api_key)
    else:
        provider = StubSignalProvider()

    if config.iv_gate_source == "engine":
        if iv_scoring is None:
            from app.services.iv_scoring import get_iv_scoring_service
            iv_scoring = get_iv_scoring_service()
        provider = EngineGateSignalProvider(provider, iv_scoring)

    logger.info(f"Safety signal provider: {provider.name}")
    return provider
