"""
Circuit Breaker

One instance per external dependency. Stops calling a failing dependency
for a cooldown period, then lets a single trial call through.

    closed --N consecutive failures--> open
    open --cooldown elapsed--> half-open
    half-open --success--> closed
    half-open --failure--> open
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from app.schemas.safety import CircuitState, CircuitStatus

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Failure counter and state for one dependency. Safe under concurrent requests."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitStatus.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._opened_at_wall: Optional[datetime] = None
        self._last_failure_at: Optional[datetime] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitStatus:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitStatus.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def allow_request(self) -> bool:
        """
        Whether a call may go to the dependency now.
        Moves open -> half-open once the cooldown has elapsed.
        """
        async with self._lock:
            if self._state == CircuitStatus.CLOSED:
                return True

            if self._state == CircuitStatus.OPEN:
                if self._clock() - self._opened_at < self.cooldown_seconds:
                    return False
                self._state = CircuitStatus.HALF_OPEN
                logger.info(f"Circuit {self.name} half-open, probing")

            # Half-open: one trial call at a time
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    async def record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            self._trial_in_flight = False
            if self._state != CircuitStatus.CLOSED:
                logger.info(f"Circuit {self.name} closed")
            self._state = CircuitStatus.CLOSED
            self._opened_at = None
            self._opened_at_wall = None

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_at = datetime.now(timezone.utc)
            self._trial_in_flight = False

            if self._state == CircuitStatus.HALF_OPEN:
                self._open()
            elif self._state == CircuitStatus.CLOSED and self._failure_count >= self.failure_threshold:
                self._open()

    def release_trial(self) -> None:
        """Free the half-open trial slot when a trial call was cancelled before finishing."""
        self._trial_in_flight = False

    def _open(self) -> None:
        self._state = CircuitStatus.OPEN
        self._opened_at = self._clock()
        self._opened_at_wall = datetime.now(timezone.utc)
        logger.warning(
            f"Circuit {self.name} opened after {self._failure_count} failures "
            f"(cooldown {self.cooldown_seconds:g}s)"
        )

    def snapshot(self) -> CircuitState:
        return CircuitState(
            name=self.name,
            state=self._state,
            failure_count=self._failure_count,
            last_failure_at=self._last_failure_at,
            opened_at=self._opened_at_wall,
        )
