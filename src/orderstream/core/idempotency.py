"""
Idempotency helpers - remember what was already delivered.

Transports redeliver whole batches. Records of a redelivered batch that
were already forwarded must not be forwarded again, so consumers keep the
transport identity of recently forwarded records and skip those they have
seen.

Architecture:
    ::

        RecentKeys(max_size)
          ├── .seen(key)  -> bool    (refreshes recency)
          ├── .add(key)               (evicts the least recent key at capacity)
          └── bounded LRU: OrderedDict under a lock

Tags:
    idempotency, deduplication, lru, orderstream
"""

from __future__ import annotations

import threading
from collections import OrderedDict


class RecentKeys:
    """Bounded, thread-safe set of recently seen keys with LRU eviction.

    Example:
        >>> keys = RecentKeys(max_size=2)
        >>> keys.add("shardId-000000000000:1")
        >>> keys.seen("shardId-000000000000:1")
        True
    """

    def __init__(self, max_size: int = 10_000) -> None:
        if max_size < 0:
            raise ValueError("max_size must be non-negative")
        self._max_size = max_size
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def seen(self, key: str) -> bool:
        with self._lock:
            if key not in self._keys:
                return False
            self._keys.move_to_end(key)
            return True

    def add(self, key: str) -> None:
        if self._max_size == 0:
            return
        with self._lock:
            self._keys[key] = None
            self._keys.move_to_end(key)
            while len(self._keys) > self._max_size:
                self._keys.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


__all__ = ["RecentKeys"]
