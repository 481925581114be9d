"""Basket result cache.

A process-wide, thread-safe TTL cache for whole-basket results. It is
constructed explicitly (see main.py lifespan) and passed to the services
that read or invalidate it.

Invalidation is coarse: any catalog or correction write clears every entry.
A generation counter makes sure a computation that started before a clear
cannot store its (stale) result afterwards.
"""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from observability.metrics import cache_events_total

logger = logging.getLogger(__name__)

KEY_PREFIX = "basket:"
KEY_DELIMITER = "|"


def basket_line_key(item: str) -> str:
    """Identity of one basket line inside a basket key (trimmed, lower-cased)."""
    return item.strip().lower()


def make_basket_key(items: Iterable[str]) -> str:
    """Derive the cache key for a basket.

    Case- and order-independent: items are trimmed, lower-cased and sorted
    before joining.

    Example:
        >>> make_basket_key(["Milk", "2kg rice"])
        'basket:2kg rice|milk'
    """
    normalized = sorted(basket_line_key(item) for item in items)
    return KEY_PREFIX + KEY_DELIMITER.join(normalized)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache usage counters."""
    keys: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass
class _CacheEntry:
    value: Any
    inserted_at: float


class BasketCache:
    """Bounded TTL cache with single-flight computation.

    Attributes:
        ttl_seconds: Entry lifetime
        max_keys: Maximum number of entries; the oldest entry is evicted
            when a new key would exceed it
    """

    def __init__(
        self,
        ttl_seconds: float = 1800,
        max_keys: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._inflight: Dict[str, Future] = {}
        self._generation = 0
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None, counting a hit or miss."""
        with self._lock:
            return self._lookup(key)

    def set(self, key: str, value: Any) -> None:
        """Store a value; the last write for a key wins."""
        with self._lock:
            self._store(key, value)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Tuple[Any, bool]:
        """Return the cached value, computing it at most once per key at a time.

        Concurrent misses for the same key wait for the first caller's
        computation instead of repeating it. If the computation raises, every
        waiter receives the same exception and nothing is stored.

        Returns:
            (value, cached) where cached is True only for a cache hit
        """
        with self._lock:
            value = self._lookup(key)
            if value is not None:
                return value, True

            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future
            generation = self._generation

        if not leader:
            return future.result(), False

        try:
            value = compute()
        except BaseException as e:
            future.set_exception(e)
            raise
        finally:
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]

        with self._lock:
            if generation == self._generation:
                self._store(key, value)
            else:
                logger.debug(f"Cache cleared while computing '{key}', result not stored")
        future.set_result(value)
        return value, False

    def clear(self) -> None:
        """Drop all entries; visible to every subsequent lookup."""
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._inflight.clear()
            self._generation += 1
        cache_events_total.labels(event="invalidation").inc()
        logger.info(f"Basket cache cleared ({dropped} entries dropped)")

    def stats(self) -> CacheStats:
        """Current key count (expired entries excluded) and hit/miss counters."""
        with self._lock:
            self._purge_expired()
            return CacheStats(keys=len(self._entries), hits=self._hits, misses=self._misses)

    def __len__(self) -> int:
        return self.stats().keys

    # Callers must hold self._lock for the helpers below

    def _lookup(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is not None and self._is_expired(entry):
            del self._entries[key]
            entry = None

        if entry is None:
            self._misses += 1
            cache_events_total.labels(event="miss").inc()
            return None

        self._hits += 1
        cache_events_total.labels(event="hit").inc()
        return entry.value

    def _store(self, key: str, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        else:
            self._purge_expired()
            while len(self._entries) >= self.max_keys:
                evicted, _ = self._entries.popitem(last=False)
                cache_events_total.labels(event="eviction").inc()
                logger.debug(f"Basket cache full, evicted '{evicted}'")
        self._entries[key] = _CacheEntry(value=value, inserted_at=self._clock())

    def _purge_expired(self) -> None:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds
