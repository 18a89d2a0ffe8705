"""
Cache module for the autopilot backend.

Provides Redis storage for market state (VIX, events, session scores).
"""

from app.services.cache.redis_client import (
    MarketStateCache,
    get_market_state_cache,
    init_redis,
    close_redis,
)

__all__ = [
    "MarketStateCache",
    "get_market_state_cache",
    "init_redis",
    "close_redis",
]
