"""Memo record and derived thread structures."""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

SortOrder = Literal["asc", "desc"]

DELETED_PLACEHOLDER = "[deleted]"


@dataclass(frozen=True)
class MemoRecord:
    """One memo as stored in a block of a storage unit."""

    id: str
    category: str
    timestamp: str
    content: str
    attachments: tuple[str, ...] = ()
    template: str | None = None
    parent_id: str | None = None
    trashed_at: str | None = None
    pinned_at: str | None = None
    permanently_deleted: bool = False

    @property
    def is_trashed(self) -> bool:
        return self.trashed_at is not None

    @property
    def is_active(self) -> bool:
        """Neither in the trash nor permanently deleted."""
        return self.trashed_at is None and not self.permanently_deleted

    @property
    def is_pinned(self) -> bool:
        return self.pinned_at is not None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class ThreadIndex:
    """Parent/child maps derived from a flat record list. Read-only."""

    children: dict[str, list[str]] = field(default_factory=dict)
    parents: dict[str, str] = field(default_factory=dict)
    roots: list[str] = field(default_factory=list)
    depth: dict[str, int] = field(default_factory=dict)
    descendant_count: dict[str, int] = field(default_factory=dict)

    def children_of(self, memo_id: str) -> list[str]:
        return list(self.children.get(memo_id, []))

    def parent_of(self, memo_id: str) -> str | None:
        return self.parents.get(memo_id)

    def depth_of(self, memo_id: str) -> int:
        return self.depth.get(memo_id, 0)

    def descendant_count_of(self, memo_id: str) -> int:
        return self.descendant_count.get(memo_id, 0)

    def descendants_of(self, memo_id: str) -> list[str]:
        """All ids reachable through children, breadth-first, excluding memo_id."""
        result: list[str] = []
        queue = list(self.children.get(memo_id, []))
        head = 0
        while head < len(queue):
            current = queue[head]
            head += 1
            result.append(current)
            queue.extend(self.children.get(current, []))
        return result

    def ancestors_of(self, memo_id: str) -> list[str]:
        """Parent chain from the direct parent up to the root."""
        chain: list[str] = []
        current = self.parents.get(memo_id)
        while current is not None:
            chain.append(current)
            current = self.parents.get(current)
        return chain


@dataclass(frozen=True)
class ThreadNode:
    id: str
    child_ids: list[str]
    parent_id: str | None
    depth: int
    descendant_count: int


@dataclass(frozen=True)
class ThreadTree:
    """One materialized thread, rooted at root_id."""

    root_id: str
    nodes: dict[str, ThreadNode]
    total_count: int
    max_depth: int
    last_updated: str


def new_memo_id() -> str:
    """Generate a time-sortable id (UUID version 7 layout)."""
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return str(uuid.UUID(int=value))


def now_iso() -> str:
    """Current local time as ISO-8601 with offset, millisecond precision."""
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def create_memo(
    category: str,
    content: str,
    *,
    memo_id: str | None = None,
    timestamp: str | None = None,
    attachments: list[str] | tuple[str, ...] | None = None,
    template: str | None = None,
    parent_id: str | None = None,
) -> MemoRecord:
    """Build a new record, assigning id and timestamp when not supplied."""
    return MemoRecord(
        id=memo_id or new_memo_id(),
        category=category,
        timestamp=timestamp or now_iso(),
        content=content,
        attachments=tuple(attachments or ()),
        template=template,
        parent_id=parent_id,
    )
