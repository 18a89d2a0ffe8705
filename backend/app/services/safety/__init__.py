"""
Safety Signal Gateway

CONTRACT:
    Input:  user id (+ symbol for the IV gate)
    Output: SignalOutcome (ok / blocked / unavailable)

RESPONSIBILITIES:
    - Serve threat, blind-spot and IV-gate signals from a short-TTL cache
    - Stop calling a failing dependency (circuit breaker, per dependency)
    - Bound every call with a timeout
    - Threats and blind spots fail CLOSED; the IV gate fails OPEN (neutral 5)

Provider implementation (stub / live HTTP / engine-backed IV gate) is
chosen from settings at construction time.
"""

from app.services.safety.circuit_breaker import CircuitBreaker
from app.services.safety.signal_cache import SignalCache
from app.services.safety.interface import SignalProvider
from app.services.safety.providers import (
    StubSignalProvider,
    HttpSignalProvider,
    EngineGateSignalProvider,
    build_signal_provider,
)
from app.services.safety.gateway import (
    SafetySignalGateway,
    get_safety_gateway,
    close_safety_gateway,
    evaluate_threats,
    evaluate_blind_spots,
    resolve_fail_closed,
    resolve_iv_gate,
    THREAT_UNAVAILABLE_REASON,
    BLIND_SPOT_UNAVAILABLE_REASON,
)

__all__ = [
    "CircuitBreaker",
    "SignalCache",
    "SignalProvider",
    "StubSignalProvider",
    "HttpSignalProvider",
    "EngineGateSignalProvider",
    "build_signal_provider",
    "SafetySignalGateway",
    "get_safety_gateway",
    "close_safety_gateway",
    "evaluate_threats",
    "evaluate_blind_spots",
    "resolve_fail_closed",
    "resolve_iv_gate",
    "THREAT_UNAVAILABLE_REASON",
    "BLIND_SPOT_UNAVAILABLE_REASON",
]
