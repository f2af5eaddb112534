"""
Short-TTL response cache in front of the data aggregator.

Absorbs request bursts from dashboard clients polling the same views:
- Identical queries within the TTL are served from memory
- Expired entries are evicted lazily on access and by a periodic sweep
- Thread-safe for concurrent request handlers

Not a correctness mechanism: callers accept data up to `ttl` seconds
stale. Live views use a TTL of seconds; historical views, which change
only on reload, use minutes.

Memory budget: ~500 entries x a few KB per aggregated response.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    """A cached value and when it stops being servable."""
    value: Any
    expires_at: float
    stored_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def make_key(namespace: str, **params) -> str:
    """
    Build a stable cache key from query parameters.

    make_key('dashboard', period='week') -> 'dashboard:period=week'
    """
    parts = [f'{name}={params[name]}' for name in sorted(params) if params[name] is not None]
    return ':'.join([namespace] + parts)


class ResponseCache:
    """
    Thread-safe TTL memoization of computed responses.

    Each set() carries its own TTL so one cache can front endpoints with
    different staleness budgets.
    """

    def __init__(
        self,
        default_ttl: float = 30.0,
        max_entries: int = 500,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._last_cleanup: Optional[float] = None

        # Statistics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_config(cls, cache_config, clock: Callable[[], float] = time.time) -> 'ResponseCache':
        return cls(
            default_ttl=cache_config.live_ttl,
            max_entries=cache_config.max_entries,
            clock=clock,
        )

    def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns None if not cached or expired.
        """
        value = self._lookup(key)
        return None if value is _MISSING else value

    def _lookup(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not entry.is_expired(now):
                    self._hits += 1
                    return entry.value
                # Expired
                del self._entries[key]
                self._evictions += 1
            self._misses += 1
        return _MISSING

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store value under key for ttl_seconds (default TTL if omitted)."""
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return

        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl, stored_at=now)

            # Evict if over capacity
            if len(self._entries) > self.max_entries:
                self._evict_oldest()

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Any],
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value, or compute, store and return it.

        compute() runs outside the lock; two concurrent misses may both
        compute, and the later result wins.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            logger.debug(f'Response cache hit: {key}')
            return value

        value = compute()
        self.set(key, value, ttl_seconds)
        return value

    def _evict_oldest(self) -> None:
        """Remove oldest entries when over capacity."""
        entries = sorted(self._entries.items(), key=lambda item: item[1].stored_at)
        # Remove oldest 10%
        to_remove = max(1, len(entries) // 10)
        for key, _ in entries[:to_remove]:
            del self._entries[key]
        self._evictions += to_remove

    def cleanup(self) -> int:
        """Sweep expired entries. Returns number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
            self._last_cleanup = now

        if expired:
            logger.debug(f'Response cache swept {len(expired)} expired entries')
        return len(expired)

    def invalidate(self, key: str) -> None:
        """Remove specific entry from cache."""
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, namespace: str) -> int:
        """Remove every entry whose key belongs to namespace."""
        with self._lock:
            keys = [key for key in self._entries if key == namespace or key.startswith(namespace + ':')]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'entries': len(self._entries),
                'max_entries': self.max_entries,
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
                'hit_rate': round(self._hits / lookups, 3) if lookups > 0 else 0,
                'last_cleanup': self._last_cleanup,
            }
