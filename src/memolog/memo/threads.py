"""Thread index: a parent/child tree rebuilt from flat parent-id links.

The index never holds records, only ids. It is immutable once built and is
thrown away wholesale whenever the underlying buffer changes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from memolog.memo.types import MemoRecord, ThreadIndex, ThreadNode, ThreadTree

logger = logging.getLogger(__name__)


def _break_cycles(order: list[str], parent_of: dict[str, str | None]) -> None:
    """Detach one member of every parent-link cycle, in place.

    The detached member is the one that appears earliest in the input.
    """
    position = {memo_id: i for i, memo_id in enumerate(order)}
    settled: set[str] = set()
    for start in order:
        path: list[str] = []
        on_path: set[str] = set()
        current: str | None = start
        while current is not None and current not in settled and current not in on_path:
            path.append(current)
            on_path.add(current)
            current = parent_of[current]
        if current is not None and current in on_path:
            cycle = path[path.index(current) :]
            breaker = min(cycle, key=position.__getitem__)
            logger.warning("Parent cycle through %s; treating %s as a root", " -> ".join(cycle), breaker)
            parent_of[breaker] = None
        settled.update(path)


def build_thread_index(records: Iterable[MemoRecord]) -> ThreadIndex:
    """Build children/parents/roots/depth/descendant maps from flat records.

    Ids whose parent is missing from the input are roots; repeated ids after
    the first are ignored.
    """
    order: list[str] = []
    parent_of: dict[str, str | None] = {}
    for record in records:
        if record.id in parent_of:
            continue
        parent_of[record.id] = record.parent_id if record.parent_id != record.id else None
        order.append(record.id)

    for memo_id in order:
        parent = parent_of[memo_id]
        if parent is not None and parent not in parent_of:
            parent_of[memo_id] = None

    _break_cycles(order, parent_of)

    children: dict[str, list[str]] = {}
    parents: dict[str, str] = {}
    roots: list[str] = []
    for memo_id in order:
        parent = parent_of[memo_id]
        if parent is None:
            roots.append(memo_id)
        else:
            children.setdefault(parent, []).append(memo_id)
            parents[memo_id] = parent

    depth: dict[str, int] = {}
    visit: list[str] = []
    for root in roots:
        depth[root] = 0
        visit.append(root)
    head = 0
    while head < len(visit):
        current = visit[head]
        head += 1
        for child in children.get(current, []):
            depth[child] = depth[current] + 1
            visit.append(child)

    descendant_count: dict[str, int] = {}
    for memo_id in reversed(visit):
        descendant_count[memo_id] = sum(1 + descendant_count[c] for c in children.get(memo_id, []))

    return ThreadIndex(
        children=children,
        parents=parents,
        roots=roots,
        depth=depth,
        descendant_count=descendant_count,
    )


def build_thread_tree(
    root_id: str,
    index: ThreadIndex,
    records: Iterable[MemoRecord],
) -> ThreadTree | None:
    """Materialize the subtree under root_id; None when the id is not indexed."""
    if root_id not in index.depth:
        return None
    by_id = {r.id: r for r in records}

    nodes: dict[str, ThreadNode] = {}
    max_depth = 0
    last_updated = ""
    for memo_id in [root_id, *index.descendants_of(root_id)]:
        node = ThreadNode(
            id=memo_id,
            child_ids=index.children_of(memo_id),
            parent_id=index.parent_of(memo_id),
            depth=index.depth_of(memo_id),
            descendant_count=index.descendant_count_of(memo_id),
        )
        nodes[memo_id] = node
        max_depth = max(max_depth, node.depth)
        record = by_id.get(memo_id)
        if record is not None and record.timestamp > last_updated:
            last_updated = record.timestamp

    return ThreadTree(
        root_id=root_id,
        nodes=nodes,
        total_count=len(nodes),
        max_depth=max_depth,
        last_updated=last_updated,
    )


def would_introduce_cycle(child_id: str, candidate_parent_id: str, index: ThreadIndex) -> bool:
    """True if re-parenting child_id under candidate_parent_id would form a loop."""
    if child_id == candidate_parent_id:
        return True
    current: str | None = candidate_parent_id
    while current is not None:
        if current == child_id:
            return True
        current = index.parent_of(current)
    return False


def find_orphans(records: Sequence[MemoRecord]) -> list[MemoRecord]:
    """Records whose parent id points at nothing in the list."""
    known = {r.id for r in records}
    return [r for r in records if r.parent_id and r.parent_id not in known]


# ── Visibility ──────────────────────────────────────────────


def is_active(record: MemoRecord) -> bool:
    return record.is_active


def flat_view(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    """What a non-thread list shows: active root records."""
    return [r for r in records if r.is_active and r.parent_id is None]


def has_active_replies(memo_id: str, records: Iterable[MemoRecord]) -> bool:
    """Direct children only."""
    return any(r.parent_id == memo_id and r.is_active for r in records)


def should_show_deleted_placeholder(
    node: MemoRecord,
    records: Sequence[MemoRecord],
    in_thread_view: bool,
    in_trash_tab: bool,
) -> bool:
    """A dead node with a live reply still renders so the thread stays connected."""
    return (
        in_thread_view
        and not in_trash_tab
        and not node.is_active
        and has_active_replies(node.id, records)
    )


# ── Index cache ─────────────────────────────────────────────


def _signature(records: Sequence[MemoRecord]) -> tuple[tuple[str, str | None], ...]:
    return tuple((r.id, r.parent_id) for r in records)


class ThreadIndexCache:
    """Thread indexes per ``unit::category`` key.

    An entry is rebuilt on the next read after an explicit invalidation, or
    when the id/parent structure of the records handed in has changed.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[tuple[tuple[str, str | None], ...], ThreadIndex]] = {}
        self._trees: dict[str, dict[str, ThreadTree]] = {}

    def get(self, key: str, records: Sequence[MemoRecord]) -> ThreadIndex:
        signature = _signature(records)
        cached = self._entries.get(key)
        if cached is not None and cached[0] == signature:
            return cached[1]
        logger.debug("Rebuilding thread index for %s (%d records)", key, len(records))
        index = build_thread_index(records)
        self._entries[key] = (signature, index)
        self._trees.pop(key, None)
        return index

    def get_tree(self, key: str, root_id: str, records: Sequence[MemoRecord]) -> ThreadTree | None:
        index = self.get(key, records)
        trees = self._trees.setdefault(key, {})
        tree = trees.get(root_id)
        if tree is None:
            tree = build_thread_tree(root_id, index, records)
            if tree is not None:
                trees[root_id] = tree
        return tree

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        self._trees.pop(key, None)

    def invalidate_unit(self, unit_id: str) -> None:
        prefix = f"{unit_id}::"
        for key in [k for k in self._entries if k.startswith(prefix)]:
            self.invalidate(key)
        for key in [k for k in self._trees if k.startswith(prefix)]:
            self._trees.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._trees.clear()

    def __len__(self) -> int:
        return len(self._entries)
