"""Response cache for provider calls.

LRUResponseCache is an OrderedDict-based LRU of RawResult objects with an
optional time-to-live. It implements the ResponseCache protocol and is the
only shared mutable state in the call path, so every access takes a lock.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from signa.protocols import RawResult, RenderedRequest

logger = logging.getLogger(__name__)


def cache_key(model: str, request: RenderedRequest, options: Mapping[str, Any] | None = None) -> str:
    """SHA-256 over the canonical JSON of model, request and options."""
    document = {
        "model": model,
        "request": request.to_cache_payload(),
        "options": {k: v for k, v in (options or {}).items() if v is not None},
    }
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    capacity: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class LRUResponseCache:
    """Thread-safe LRU cache of provider results with optional TTL.

    Args:
        capacity: Maximum number of entries kept.
        ttl: Seconds an entry stays valid, or None for no expiry.
        clock: Monotonic time source (tests pass a fake).
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        self._cache: OrderedDict[str, tuple[float, RawResult]] = OrderedDict()
        self._capacity = capacity
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get(self, key: str) -> RawResult | None:
        """Return the cached result, or None on miss or expiry."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                logger.debug("Cache miss: %s", key[:12])
                return None
            stored_at, result = entry
            if self._ttl is not None and self._clock() - stored_at >= self._ttl:
                del self._cache[key]
                self._misses += 1
                logger.debug("Cache expired: %s", key[:12])
                return None
            self._cache.move_to_end(key)
            self._hits += 1
            logger.debug("Cache hit: %s", key[:12])
            return result

    def set(self, key: str, result: RawResult) -> None:
        """Store a result, evicting the least recently used entry if full."""
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = (self._clock(), result)
            while len(self._cache) > self._capacity:
                evicted_key, _ = self._cache.popitem(last=False)
                logger.debug("Cache evict: %s", evicted_key[:12])

    def clear(self) -> None:
        with self._lock:
            size = len(self._cache)
            self._cache.clear()
            self._hits = 0
            self._misses = 0
        if size > 0:
            logger.debug("Cache cleared (%d entries)", size)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(self._hits, self._misses, len(self._cache), self._capacity)
