"""Capacity-bounded key/value cache with least-recently-used eviction."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Hashable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    data: V
    tag: Any = None
    stored_at: float = field(default_factory=time.time)


class LRUCache(Generic[K, V]):
    """OrderedDict-backed LRU. The last key in the dict is the most recent.

    ``tag`` is opaque to the cache; the policy layer keeps an mtime there.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()

    def get(self, key: K) -> V | None:
        entry = self.get_entry(key)
        return entry.data if entry is not None else None

    def get_entry(self, key: K) -> CacheEntry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry

    def set(self, key: K, value: V, tag: Any = None) -> None:
        self._entries.pop(key, None)
        if len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = CacheEntry(value, tag)

    def invalidate(self, key: K) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._entries))
