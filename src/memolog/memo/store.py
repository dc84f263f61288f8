"""Flat memo store: CRUD over the blocks of one buffer.

Every function takes the buffer text and returns new text; nothing here
touches the filesystem. Mutations return ``(buffer, ok)`` and hand back the
original buffer untouched when ``ok`` is False. Header fields the codec does
not know about survive update, trash, restore and pin because those
operations rewrite the header in place instead of re-encoding the record.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from memolog.memo import codec
from memolog.memo.codec import HeaderField, HeaderFields
from memolog.memo.types import MemoRecord, SortOrder

logger = logging.getLogger(__name__)

_BLOCK_START = re.compile(r"^(?=<!--[ \t]*(?:memo-id|id)[ \t]*:)", re.MULTILINE)
_TODO_BOX = re.compile(r"^(\s*)-\s*\[[ xX]\]", re.MULTILINE)


# ── Blocks ──────────────────────────────────────────────────


def split_blocks(buffer: str) -> list[str]:
    """Split a buffer before every line-start memo header."""
    return [piece for piece in _BLOCK_START.split(buffer) if piece.strip()]


def join_blocks(blocks: list[str]) -> str:
    return "".join(b if b.endswith("\n") else b + "\n" for b in blocks)


def block_id(block: str) -> str | None:
    return codec.header_id(block)


def find_block_index(blocks: list[str], memo_id: str) -> int | None:
    for i, block in enumerate(blocks):
        if block_id(block) == memo_id:
            return i
    return None


def _is_memo_block(block: str) -> bool:
    first, _ = codec.split_block(block)
    return codec.parse_header(first) is not None


def _keep_spacing(old: str, new: str) -> str:
    """Carry the blank lines that followed the old block over to its replacement."""
    gap = old[len(old.rstrip("\n")) :]
    return new.rstrip("\n") + (gap or "\n")


def _rewrite(buffer: str, memo_id: str, fn: Callable[[str], str | None]) -> tuple[str, bool]:
    blocks = split_blocks(buffer)
    idx = find_block_index(blocks, memo_id)
    if idx is None:
        return buffer, False
    new_block = fn(blocks[idx])
    if new_block is None:
        return buffer, False
    blocks[idx] = _keep_spacing(blocks[idx], new_block) if new_block else ""
    return join_blocks([b for b in blocks if b]), True


def _edit_header(block: str, fn: Callable[[HeaderFields, str], str | None]) -> str | None:
    """Apply fn to a block's parsed header; fn mutates the fields and returns the new body."""
    first, body = codec.split_block(block)
    fields = codec.parse_header(first)
    if fields is None:
        return None
    new_body = fn(fields, body)
    if new_body is None:
        return None
    return codec.assemble_block(codec.render_header(fields), new_body)


def _is_marker(fields: HeaderFields) -> bool:
    return codec.field_text(fields, "permanently-deleted") == "true"


def _is_flagged_trashed(fields: HeaderFields) -> bool:
    return codec.field_text(fields, "deleted") == "true"


# ── Reads ───────────────────────────────────────────────────


def list_memos(
    buffer: str,
    category: str = "",
    default_template: str | None = None,
) -> list[MemoRecord]:
    """Decode every memo block, in file order; empty category keeps all."""
    records: list[MemoRecord] = []
    for block in split_blocks(buffer):
        if not _is_memo_block(block):
            continue
        record = codec.decode(block, category, default_template)
        if record is None:
            continue
        if not category or record.category == category:
            records.append(record)
    return records


def find_memo(
    buffer: str,
    memo_id: str,
    default_template: str | None = None,
) -> MemoRecord | None:
    blocks = split_blocks(buffer)
    idx = find_block_index(blocks, memo_id)
    if idx is None:
        return None
    return codec.decode(blocks[idx], "", default_template)


# ── Writes ──────────────────────────────────────────────────


def append(
    buffer: str,
    record: MemoRecord,
    order: SortOrder = "asc",
    default_template: str | None = None,
    todo_mode: bool = False,
) -> str:
    """Insert a new block: at the tail for asc, before the first memo for desc."""
    block = codec.encode(record, default_template, todo_mode)
    if not buffer.strip():
        return block

    if order == "desc":
        blocks = split_blocks(buffer)
        at = 0 if _is_memo_block(blocks[0]) else 1
        if at == 1 and not blocks[0].endswith("\n\n"):
            blocks[0] = blocks[0].rstrip("\n") + "\n\n"
        blocks.insert(at, block + "\n")
        return join_blocks(blocks)

    return buffer.rstrip("\n") + "\n\n" + block


def update(
    buffer: str,
    memo_id: str,
    mutate: Callable[[str], str],
    default_template: str | None = None,
    todo_mode: bool = False,
) -> tuple[str, bool]:
    """Replace a memo's content with mutate(content).

    Only the body is re-rendered. The header is kept as written and a
    commented-out body is wrapped again.
    """

    def apply(block: str) -> str | None:
        record = codec.decode(block, "", default_template)
        if record is None or record.permanently_deleted:
            return None
        changed = replace(record, content=mutate(record.content))

        def rebody(fields: HeaderFields, body: str) -> str:
            new_body = codec.encode_body(changed, default_template, todo_mode)
            return codec.comment_out(new_body) if codec.is_commented_out(body) else new_body

        return _edit_header(block, rebody)

    return _rewrite(buffer, memo_id, apply)


def remove(buffer: str, memo_id: str) -> tuple[str, bool]:
    """Hard-remove a block."""
    return _rewrite(buffer, memo_id, lambda block: "")


def move_to_trash(buffer: str, memo_id: str, now: str) -> tuple[str, bool]:
    """Soft-delete: flag the header and comment the body out once.

    Trashing an already trashed block only refreshes trashedAt.
    """

    def apply(fields: HeaderFields, body: str) -> str | None:
        if _is_marker(fields):
            logger.warning("Cannot trash permanently deleted memo %s", memo_id)
            return None
        fields["deleted"] = HeaderField.quote("true")
        fields["trashedAt"] = HeaderField.quote(now)
        return body if codec.is_commented_out(body) else codec.comment_out(body)

    return _rewrite(buffer, memo_id, lambda block: _edit_header(block, apply))


def restore(buffer: str, memo_id: str) -> tuple[str, bool]:
    """Undo move_to_trash; fails when the block is not flagged as trashed."""

    def apply(fields: HeaderFields, body: str) -> str | None:
        if not _is_flagged_trashed(fields):
            return None
        fields.pop("deleted", None)
        fields.pop("trashedAt", None)
        return codec.uncomment(body) if codec.is_commented_out(body) else body

    return _rewrite(buffer, memo_id, lambda block: _edit_header(block, apply))


def replace_with_deletion_marker(buffer: str, memo_id: str) -> tuple[str, bool]:
    def apply(block: str) -> str | None:
        record = codec.decode(block)
        if record is None:
            return None
        return codec.deletion_marker(record)

    return _rewrite(buffer, memo_id, apply)


def set_pinned(buffer: str, memo_id: str, pinned_at: str | None) -> tuple[str, bool]:
    """Set or clear pinnedAt. Pinning is independent of the trash state."""

    def apply(fields: HeaderFields, body: str) -> str | None:
        if _is_marker(fields):
            return None
        if pinned_at is None:
            fields.pop("pinnedAt", None)
        else:
            fields["pinnedAt"] = HeaderField.quote(pinned_at)
        return body

    return _rewrite(buffer, memo_id, lambda block: _edit_header(block, apply))


def set_todo_completed(buffer: str, memo_id: str, completed: bool) -> tuple[str, bool]:
    """Tick or untick the first checkbox in an active memo's body."""

    def apply(fields: HeaderFields, body: str) -> str | None:
        if _is_marker(fields) or _is_flagged_trashed(fields):
            return None
        if _TODO_BOX.search(body) is None:
            return None
        mark = "x" if completed else " "
        return _TODO_BOX.sub(lambda m: f"{m.group(1)}- [{mark}]", body, count=1)

    return _rewrite(buffer, memo_id, lambda block: _edit_header(block, apply))


def cleanup_expired(buffer: str, retention_days: int, now: datetime) -> tuple[str, int]:
    """Drop trashed blocks older than the retention period.

    Blocks whose trashedAt is missing or unparsable are kept. Replies of a
    removed block are not touched and simply become orphans.
    """
    cutoff = codec.to_aware(now) - timedelta(days=retention_days)
    kept: list[str] = []
    removed = 0
    for block in split_blocks(buffer):
        first, _ = codec.split_block(block)
        fields = codec.parse_header(first)
        if fields is not None and _is_flagged_trashed(fields):
            trashed = codec.parse_iso(codec.field_text(fields, "trashedAt"))
            if trashed is not None and codec.to_aware(trashed) <= cutoff:
                removed += 1
                continue
        kept.append(block)
    if not removed:
        return buffer, 0
    return join_blocks(kept), removed
