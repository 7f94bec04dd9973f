"""
Bounded in-memory TTL cache for collaborator lookups.

Keys are frozen dataclasses (ProductKey, StockKey, ...), never formatted
strings, so entries are invalidated by exact key. When the cache is full the
least recently used entry is evicted.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class ProductKey:
    product_code: str


@dataclass(frozen=True)
class StockKey:
    store_code: str
    product_code: str


@dataclass(frozen=True)
class StoreGrantsKey:
    store_code: str


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[K, V]):
    def __init__(
        self,
        *,
        ttl_seconds: float = 300,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._lock = threading.Lock()
        # bumped by every invalidation; a load that spans one is not cached
        self._generation = 0

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: K) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._store(key, value)

    def _store(self, key: K, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("cache evicted %r", evicted)
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def get_or_load(self, key: K, loader: Callable[[], V]) -> V:
        """
        Return the cached value or call loader and cache a non-None result.

        A result is returned but not cached when an invalidation happened while
        loader ran, since it may predate the change that invalidated.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._lock:
            generation = self._generation
        value = loader()
        if value is not None:
            with self._lock:
                if generation == self._generation:
                    self._store(key, value)
        return value

    def invalidate(self, key: K) -> bool:
        with self._lock:
            self._generation += 1
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            self._generation += 1
            count = len(self._entries)
            self._entries.clear()
            return count

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 3) if total else 0,
            "evictions": self.evictions,
            "ttl_seconds": self.ttl_seconds,
        }
