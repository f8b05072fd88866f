"""
Response cache for Health Connect.

Memoizes single-shot analysis results by request fingerprint so identical
requests within the TTL window never reach the model twice. Conversational
turns are never cached.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600


class ResponseCache:
    """In-memory key/value cache with a fixed time-to-live."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl: Seconds an entry stays readable after ``set``.
            enabled: When False every lookup misses and nothing is stored.
            clock: Monotonic time source, injectable for tests.
        """
        self.ttl = ttl
        self.enabled = enabled
        self._clock = clock
        self._cache: Dict[str, dict] = {}
        self._stats = {"hits": 0, "misses": 0, "expirations": 0}

    def _expired(self, entry: dict, now: float) -> bool:
        return now - entry["ts"] >= self.ttl

    def get(self, key: str) -> Optional[Any]:
        """Look up a cached value. Returns None when absent or expired."""
        if not self.enabled:
            return None

        entry = self._cache.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        if self._expired(entry, self._clock()):
            del self._cache[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        return entry["data"]

    def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one and restarting its TTL."""
        if not self.enabled:
            return
        self._cache[key] = {"data": value, "ts": self._clock()}

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        dead = [k for k, entry in self._cache.items() if self._expired(entry, now)]
        for k in dead:
            del self._cache[k]
        self._stats["expirations"] += len(dead)
        if dead:
            logger.debug("Purged %d expired cache entries", len(dead))
        return len(dead)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> dict:
        """Return cache statistics."""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            "enabled": self.enabled,
            "entries": len(self._cache),
            "ttl_seconds": self.ttl,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "hit_rate_pct": round(hit_rate, 1),
            "expirations": self._stats["expirations"],
        }
