"""Parsed-memo cache validated against storage-unit modification times."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from memolog.cache.lru import LRUCache
from memolog.memo.types import MemoRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


def cache_key(unit_id: str, category: str) -> str:
    return f"{unit_id}::{category}"


class MemoCache:
    """Memo lists per ``unit::category``, each tagged with the unit's mtime.

    A lookup only hits when the caller's current mtime equals the tag stored
    with the entry, so a list parsed before the last write is never served.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._cache: LRUCache[str, list[MemoRecord]] = LRUCache(capacity)

    def get_memos(self, key: str, current_mtime: int | None) -> list[MemoRecord] | None:
        entry = self._cache.get_entry(key)
        if entry is None:
            logger.debug("Cache miss: %s", key)
            return None
        if current_mtime is None:
            # Storage unit is gone.
            self._cache.invalidate(key)
            logger.debug("Cache drop (unit missing): %s", key)
            return None
        if entry.tag is None or entry.tag != current_mtime:
            self._cache.invalidate(key)
            logger.debug("Cache stale: %s (cached %s, now %s)", key, entry.tag, current_mtime)
            return None
        logger.debug("Cache hit: %s", key)
        return list(entry.data)

    def set_memos(self, key: str, records: Sequence[MemoRecord], mtime: int | None) -> None:
        self._cache.set(key, list(records), mtime)

    def invalidate(self, key: str) -> None:
        self._cache.invalidate(key)

    def invalidate_unit(self, unit_id: str) -> None:
        """Drop every category entry of one storage unit."""
        prefix = f"{unit_id}::"
        for key in [k for k in self._cache.keys() if k.startswith(prefix)]:
            self._cache.invalidate(key)

    def clear_all(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        return self._cache.size()
