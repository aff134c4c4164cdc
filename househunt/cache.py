"""Bounded TTL cache for school and assessment lookups.

Lookups against the school sites cost a full browser session each, so
results are kept for a while and concurrent requests for the same key
share a single load.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from househunt.logger import get_logger

log = get_logger(__name__)

_MISSING = object()


def cache_key(kind: str, subject: str) -> str:
    """Deterministic key for a lookup, insensitive to case and spacing."""
    normalized = " ".join(subject.lower().split())
    return f"{kind}:{normalized}"


class LookupCache:
    """TTL cache with a size bound and per-key load locks.

    When full, the entry stored longest ago is evicted. Failed loads are
    not cached.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_sec: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._max_entries = max_entries
        self._ttl = ttl_sec
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, stored_at = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return default
        return value

    def set(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest_key]
            log.debug("Cache entry evicted", key=oldest_key)
        self._entries[key] = (value, self._clock())

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or load it, at most one load per key at a time."""
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            self._hits += 1
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                # Another task may have loaded it while we waited.
                value = self.get(key, _MISSING)
                if value is not _MISSING:
                    self._hits += 1
                    return value

                self._misses += 1
                log.debug("Cache miss, loading", key=key)
                value = await loader()
                self.set(key, value)
        finally:
            # The lock goes only once no task holds or waits on it.
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]
        return value

    def clear(self) -> None:
        self._entries.clear()
        log.info("Lookup cache cleared")

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_entries": self._max_entries,
            "ttl_sec": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
        }

    def __len__(self) -> int:
        return len(self._entries)
