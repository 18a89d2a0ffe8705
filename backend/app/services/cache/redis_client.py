"""
Redis cache client for market state.

Holds the latest VIX reading, recently classified events and the previous
session's final IV score. An external poller writes; the IV scoring service
reads. Falls back to process memory when Redis is unreachable.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, List, Any

import redis.asyncio as redis

from app.core.config import settings
from app.schemas.events import EventRecord
from app.schemas.iv_score import VIXState

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_pool: Optional[redis.Redis] = None

VIX_KEY = "market:vix"
EVENTS_KEY = "market:events"
SESSION_SCORE_KEY = "market:session_score"
PREVIOUS_SESSION_SCORE_KEY = "market:session_score:previous"
MAX_STORED_EVENTS = 200


async def init_redis() -> Optional[redis.Redis]:
    """
    Initialize Redis connection pool.
    Called on application startup.
    """
    global _redis_pool

    if _redis_pool is not None:
        return _redis_pool

    try:
        _redis_pool = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        # Test connection
        await _redis_pool.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
        return _redis_pool
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}. Using in-memory fallback.")
        _redis_pool = None
        return None


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None
        logger.info("Redis connection closed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketStateCache:
    """
    Redis-based store for the inputs of the IV scoring engine.

    Keys:
    - market:vix → JSON {level, previous_level, updated_at}
    - market:events → List of EventRecord JSON (newest first)
    - market:session_score → JSON {score, session, recorded_at}
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self._redis = redis_client
        # In-memory fallback when Redis is unavailable
        self._memory_cache: Dict[str, Any] = {}

    @property
    def redis(self) -> Optional[redis.Redis]:
        return self._redis or _redis_pool

    async def _get(self, key: str) -> Optional[str]:
        if self.redis:
            try:
                return await self.redis.get(key)
            except Exception as e:
                logger.debug(f"Redis get {key} failed: {e}")
        return self._memory_cache.get(key)

    async def _set(self, key: str, value: str) -> None:
        if self.redis:
            try:
                await self.redis.set(key, value)
                return
            except Exception as e:
                logger.debug(f"Redis set {key} failed: {e}")
        self._memory_cache[key] = value

    # ============ VIX ============

    async def set_vix(self, level: float, updated_at: Optional[datetime] = None) -> VIXState:
        """
        Record a new VIX reading.
        The previously stored level becomes `previous_level`.
        """
        updated_at = updated_at or _utcnow()
        current = await self._get(VIX_KEY)
        previous_level = json.loads(current)["level"] if current else 0.0

        value = json.dumps({
            "level": level,
            "previous_level": previous_level,
            "updated_at": updated_at.isoformat(),
        })
        await self._set(VIX_KEY, value)

        return VIXState(level=level, previous_level=previous_level, minutes_since_update=0.0)

    async def get_vix_state(self, now: Optional[datetime] = None) -> Optional[VIXState]:
        """Get the latest VIX reading, aged relative to `now`."""
        value = await self._get(VIX_KEY)
        if not value:
            return None

        data = json.loads(value)
        updated_at = datetime.fromisoformat(data["updated_at"])
        age = ((now or _utcnow()) - updated_at).total_seconds() / 60.0

        return VIXState(
            level=data["level"],
            previous_level=data.get("previous_level", 0.0),
            minutes_since_update=max(0.0, age),
        )

    # ============ Events ============

    async def record_event(self, event: EventRecord) -> None:
        """Store a classified event."""
        value = event.model_dump_json()

        if self.redis:
            try:
                await self.redis.lpush(EVENTS_KEY, value)
                await self.redis.ltrim(EVENTS_KEY, 0, MAX_STORED_EVENTS - 1)
                return
            except Exception as e:
                logger.debug(f"Redis record_event failed: {e}")

        events = self._memory_cache.setdefault(EVENTS_KEY, [])
        events.insert(0, value)
        del events[MAX_STORED_EVENTS:]

    async def get_recent_events(
        self,
        window: timedelta = timedelta(hours=4),
        now: Optional[datetime] = None,
    ) -> List[EventRecord]:
        """Get events whose timestamp falls within `window` before `now`."""
        raw: List[str] = []

        if self.redis:
            try:
                raw = await self.redis.lrange(EVENTS_KEY, 0, -1)
            except Exception as e:
                logger.debug(f"Redis get_recent_events failed: {e}")
                raw = list(self._memory_cache.get(EVENTS_KEY, []))
        else:
            raw = list(self._memory_cache.get(EVENTS_KEY, []))

        cutoff = (now or _utcnow()) - window
        events = [EventRecord.model_validate_json(item) for item in raw]
        return [e for e in events if e.timestamp >= cutoff]

    # ============ Session Score ============

    async def set_session_score(self, score: float, session: str, recorded_at: Optional[datetime] = None) -> None:
        """
        Record the latest score of the current session.
        The last score of an earlier session is kept for spillover.
        """
        current = await self._get(SESSION_SCORE_KEY)
        if current and json.loads(current).get("session") != session:
            await self._set(PREVIOUS_SESSION_SCORE_KEY, current)

        await self._set(SESSION_SCORE_KEY, json.dumps({
            "score": score,
            "session": session,
            "recorded_at": (recorded_at or _utcnow()).isoformat(),
        }))

    async def get_previous_session_score(self, current_session: Optional[str] = None) -> float:
        """
        Get the final score of the most recent session other than current_session.
        Returns 0 when there is none.
        """
        for key in (SESSION_SCORE_KEY, PREVIOUS_SESSION_SCORE_KEY):
            value = await self._get(key)
            if not value:
                continue
            data = json.loads(value)
            if current_session is None or data.get("session") != current_session:
                return float(data["score"])
        return 0.0


# Singleton instance
_market_state_cache: Optional[MarketStateCache] = None


def get_market_state_cache() -> MarketStateCache:
    """Get the market state cache singleton."""
    global _market_state_cache
    if _market_state_cache is None:
        _market_state_cache = MarketStateCache()
    return _market_state_cache
