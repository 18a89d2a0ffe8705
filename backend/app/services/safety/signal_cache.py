"""
Short-TTL in-process cache for safety signals.

Keys are tuples: (signal type, user id[, symbol]).
Expired entries are kept for `stale_horizon` seconds so they can be served
stale while a circuit is open. Older ones are pruned on write.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

CacheKey = Tuple[str, ...]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    fetched_at: datetime
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class SignalCache:
    """TTL map with an asyncio lock around every access."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, stale_horizon: float = 600.0):
        self._clock = clock
        self.stale_horizon = stale_horizon
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get_fresh(self, key: CacheKey) -> Optional[CacheEntry]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                return entry
            return None

    async def get_stale(self, key: CacheKey) -> Optional[CacheEntry]:
        """Any entry for the key, expired or not."""
        async with self._lock:
            return self._entries.get(key)

    async def set(self, key: CacheKey, value: Any, ttl: float, fetched_at: datetime) -> None:
        async with self._lock:
            now = self._clock()
            self._prune(now)
            self._entries[key] = CacheEntry(value=value, fetched_at=fetched_at, expires_at=now + ttl)

    def _prune(self, now: float) -> None:
        cutoff = now - self.stale_horizon
        for key in [k for k, e in self._entries.items() if e.expires_at <= cutoff]:
            del self._entries[key]

    async def invalidate(self, *keys: CacheKey) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            return removed

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
