"""
Tract Affordability Atlas - Bounded Dataset Cache

Region datasets run from a few hundred KB to a few MB each and there are
roughly 400 regions, so the service keeps only the K most recently *loaded*
regions in memory.

Eviction is by insertion order: a hit does not refresh an entry's position.
Failed loads are not cached, so every miss for an unknown key retries the
loader. Loads run outside the lock; only the insert/evict step is
serialized, and two threads racing to load the same key both succeed with
the last writer's value kept.
"""

import threading
from collections import OrderedDict
from typing import Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from src.utils.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedDatasetCache(Generic[K, V]):
    def __init__(self, loader: Callable[[K], Optional[V]], capacity: int, name: str = "dataset"):
        if capacity < 1:
            raise ValueError(f"{name} cache capacity must be at least 1, got {capacity}")

        self.name = name
        self.capacity = capacity
        self._loader = loader
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            if key in self._entries:
                self._hits += 1
                return self._entries[key]
            self._misses += 1

        value = self._loader(key)
        if value is None:
            logger.debug(f"{self.name} cache: no data for {key}")
            return None

        self._insert(key, value)
        return value

    def _insert(self, key: K, value: V) -> None:
        with self._lock:
            if key in self._entries:
                # Concurrent load of the same key; keep its original slot
                self._entries[key] = value
                return

            if len(self._entries) >= self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.info(f"{self.name} cache full ({self.capacity}), evicted {evicted}")

            self._entries[key] = value

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._entries.keys())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
