"""Thread-aware mutations: cascade delete/trash/restore and replies.

Like the store, these are pure buffer-in/buffer-out functions. Callers that
cache thread indexes must invalidate them after every successful call.
"""

from __future__ import annotations

import logging

from memolog.errors import InvalidStateError
from memolog.memo import store
from memolog.memo.threads import build_thread_index
from memolog.memo.types import MemoRecord, SortOrder, create_memo

logger = logging.getLogger(__name__)


def delete_with_descendants(buffer: str, memo_id: str, category: str = "") -> tuple[str, bool]:
    """Permanently delete a memo together with its whole subtree.

    A memo without replies is removed outright. A memo with replies leaves a
    deletion marker behind and every descendant block is removed.
    """
    records = store.list_memos(buffer, category)
    if not any(r.id == memo_id for r in records):
        return buffer, False

    descendants = build_thread_index(records).descendants_of(memo_id)
    if not descendants:
        return store.remove(buffer, memo_id)

    buffer, _ = store.replace_with_deletion_marker(buffer, memo_id)
    for child_id in descendants:
        buffer, _ = store.remove(buffer, child_id)
    logger.debug("Deleted %s with %d descendants", memo_id, len(descendants))
    return buffer, True


def trash_with_descendants(
    buffer: str,
    memo_id: str,
    now: str,
    category: str = "",
) -> tuple[str, bool]:
    """Move a memo and every descendant to the trash with one trashedAt."""
    records = store.list_memos(buffer, category)
    if not any(r.id == memo_id for r in records):
        return buffer, False

    buffer, ok = store.move_to_trash(buffer, memo_id, now)
    if not ok:
        return buffer, False
    for child_id in build_thread_index(records).descendants_of(memo_id):
        # Deletion markers refuse the trash and are left as they are.
        buffer, _ = store.move_to_trash(buffer, child_id, now)
    return buffer, True


def restore_with_descendants(buffer: str, memo_id: str) -> tuple[str, bool]:
    """Restore a trashed memo, then every descendant that is still trashed.

    Raises InvalidStateError when the memo is permanently deleted or not in
    the trash. Active and permanently deleted descendants are left alone.
    """
    records = store.list_memos(buffer)
    by_id = {r.id: r for r in records}
    target = by_id.get(memo_id)
    if target is None:
        return buffer, False
    if target.permanently_deleted:
        raise InvalidStateError(f"memo {memo_id} is permanently deleted")
    if not target.is_trashed:
        raise InvalidStateError(f"memo {memo_id} is not in the trash")

    buffer, ok = store.restore(buffer, memo_id)
    if not ok:
        return buffer, False
    for child_id in build_thread_index(records).descendants_of(memo_id):
        child = by_id.get(child_id)
        if child is not None and child.is_trashed:
            buffer, _ = store.restore(buffer, child_id)
    return buffer, True


def add_reply(
    buffer: str,
    parent_id: str,
    content: str,
    category: str | None = None,
    *,
    order: SortOrder = "asc",
    template: str | None = None,
    attachments: list[str] | tuple[str, ...] | None = None,
    todo_mode: bool = False,
    default_template: str | None = None,
    memo_id: str | None = None,
    timestamp: str | None = None,
) -> tuple[str, MemoRecord]:
    """Append a reply under parent_id; the reply takes the parent's category."""
    parent = store.find_memo(buffer, parent_id)
    if parent is None:
        raise InvalidStateError(f"parent memo {parent_id} not found")
    if category is not None and category != parent.category:
        raise InvalidStateError(
            f"reply category {category!r} does not match parent category {parent.category!r}"
        )

    record = create_memo(
        parent.category,
        content,
        memo_id=memo_id,
        timestamp=timestamp,
        attachments=attachments,
        template=template,
        parent_id=parent_id,
    )
    buffer = store.append(buffer, record, order, default_template, todo_mode)
    return buffer, record
