"""Tests for the flat memo store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from memolog.memo import store
from memolog.memo.codec import encode
from memolog.memo.types import DELETED_PLACEHOLDER, create_memo

TS = "2025-01-01T10:00:00+09:00"
NOW = "2025-01-02T00:00:00+09:00"


def rec(memo_id: str, content: str | None = None, category: str = "work", **kwargs):
    return create_memo(category, content or f"memo {memo_id}", memo_id=memo_id, timestamp=TS, **kwargs)


def build(*records, order="asc") -> str:
    buffer = ""
    for r in records:
        buffer = store.append(buffer, r, order)
    return buffer


def ids(buffer: str, category: str = "") -> list[str]:
    return [r.id for r in store.list_memos(buffer, category)]


class TestSplitBlocks:
    def test_empty(self):
        assert store.split_blocks("") == []
        assert store.split_blocks("  \n\n") == []

    def test_splits_on_both_header_spellings(self):
        buffer = "<!-- memo-id: a, timestamp: t -->\n## h\none\n\n<!-- id: b, ts: t -->\n## h\ntwo\n"
        blocks = store.split_blocks(buffer)
        assert [store.block_id(b) for b in blocks] == ["a", "b"]
        assert store.join_blocks(blocks) == buffer

    def test_header_marker_must_start_a_line(self):
        buffer = "<!-- memo-id: a, timestamp: t -->\n## h\nquote: <!-- memo-id: b -->\n"
        assert len(store.split_blocks(buffer)) == 1

    def test_preamble_is_kept_but_not_listed(self):
        buffer = "# Journal\n\n" + encode(rec("a"))
        assert len(store.split_blocks(buffer)) == 2
        assert ids(buffer) == ["a"]


class TestListAndFind:
    def test_category_filter_keeps_file_order(self):
        buffer = build(rec("1"), rec("2", category="home"), rec("3"))
        assert ids(buffer) == ["1", "2", "3"]
        assert ids(buffer, "work") == ["1", "3"]
        assert ids(buffer, "home") == ["2"]

    def test_find_memo(self):
        buffer = build(rec("1"), rec("2"))
        assert store.find_memo(buffer, "2").content == "memo 2"
        assert store.find_memo(buffer, "9") is None

    def test_id_match_is_exact(self):
        buffer = build(rec("1"), rec("10"))
        assert store.find_block_index(store.split_blocks(buffer), "1") == 0
        assert store.find_block_index(store.split_blocks(buffer), "10") == 1


class TestAppend:
    def test_ascending(self):
        assert ids(build(rec("1"), rec("2"), order="asc")) == ["1", "2"]

    def test_descending(self):
        assert ids(build(rec("1"), rec("2"), order="desc")) == ["2", "1"]

    def test_descending_keeps_preamble_first(self):
        buffer = store.append("# Journal\n", rec("1"), "desc")
        buffer = store.append(buffer, rec("2"), "desc")
        assert buffer.startswith("# Journal\n")
        assert ids(buffer) == ["2", "1"]

    def test_blocks_separated_by_blank_line(self):
        buffer = build(rec("1"), rec("2"))
        assert "memo 1\n\n<!-- memo-id: 2" in buffer

    def test_header_shaped_content_stays_in_one_block(self):
        content = "note:\n<!-- id: x -->\nmore"
        buffer = build(rec("1", content), rec("2"))
        assert ids(buffer) == ["1", "2"]
        assert store.find_memo(buffer, "1").content == content
        assert "\n\\<!-- id: x -->\n" in buffer


class TestUpdate:
    def test_updates_content_only(self):
        buffer = build(rec("1"), rec("2"), rec("3"))
        new, ok = store.update(buffer, "2", lambda c: c.upper())
        assert ok
        assert store.find_memo(new, "2").content == "MEMO 2"
        assert store.find_memo(new, "2").timestamp == TS
        blocks_before, blocks_after = store.split_blocks(buffer), store.split_blocks(new)
        assert blocks_after[0] == blocks_before[0]
        assert blocks_after[2] == blocks_before[2]

    def test_missing_id(self):
        buffer = build(rec("1"))
        assert store.update(buffer, "x", str.upper) == (buffer, False)

    def test_does_not_touch_prefix_ids(self):
        buffer = build(rec("1"), rec("10"))
        new, _ = store.update(buffer, "1", lambda c: "changed")
        assert store.find_memo(new, "10").content == "memo 10"

    def test_deletion_marker_cannot_be_updated(self):
        buffer, _ = store.replace_with_deletion_marker(build(rec("1")), "1")
        assert store.update(buffer, "1", str.upper) == (buffer, False)

    def test_keeps_unknown_header_fields(self):
        buffer = build(rec("1")).replace(" -->", ", mood: happy -->", 1)
        new, ok = store.update(buffer, "1", lambda c: "changed")
        assert ok
        assert "mood: happy" in new.splitlines()[0]
        assert store.find_memo(new, "1").content == "changed"

    def test_keeps_flag_on_corrupt_trash_block(self):
        buffer = (
            f'<!-- memo-id: 1, timestamp: {TS}, category: "work", deleted: "true" -->\n'
            "<!--\n## 2025-01-01 10:00\nmemo 1\n-->\n"
        )
        new, ok = store.update(buffer, "1", lambda c: c + "!")
        assert ok
        header, body = new.split("\n", 1)
        assert 'deleted: "true"' in header
        assert body.startswith("<!--\n") and body.rstrip().endswith("-->")
        assert store.find_memo(new, "1").content == "memo 1!"
        assert store.restore(new, "1")[1]


class TestRemove:
    def test_remove(self):
        buffer = build(rec("1"), rec("2"))
        new, ok = store.remove(buffer, "1")
        assert ok
        assert ids(new) == ["2"]

    def test_remove_missing(self):
        buffer = build(rec("1"))
        assert store.remove(buffer, "2") == (buffer, False)


class TestTrash:
    def test_move_to_trash(self):
        buffer = build(rec("1", attachments=["a.png"]), rec("2"))
        new, ok = store.move_to_trash(buffer, "1", NOW)
        assert ok
        record = store.find_memo(new, "1")
        assert record.trashed_at == NOW
        assert record.content == "memo 1"
        assert record.attachments == ("a.png",)
        assert store.find_memo(new, "2").is_active

    def test_trash_twice_refreshes_and_wraps_once(self):
        buffer = build(rec("1"))
        once, _ = store.move_to_trash(buffer, "1", NOW)
        twice, ok = store.move_to_trash(once, "1", "2025-01-05T00:00:00+09:00")
        assert ok
        assert twice.count("<!--\n") == 1
        assert store.find_memo(twice, "1").trashed_at == "2025-01-05T00:00:00+09:00"
        assert store.find_memo(twice, "1").content == "memo 1"

    def test_restore_is_inverse_of_trash(self):
        buffer = build(rec("1"), rec("2"), rec("3"))
        trashed, _ = store.move_to_trash(buffer, "2", NOW)
        restored, ok = store.restore(trashed, "2")
        assert ok
        assert restored == buffer

    def test_restore_active_memo_fails(self):
        buffer = build(rec("1"))
        assert store.restore(buffer, "1") == (buffer, False)

    def test_restore_missing_fails(self):
        assert store.restore("", "1") == ("", False)

    def test_unknown_header_fields_survive(self):
        buffer = "<!-- memo-id: a, timestamp: t, custom: 42 -->\n## h\nbody\n"
        trashed, _ = store.move_to_trash(buffer, "a", NOW)
        assert "custom: 42" in trashed
        restored, _ = store.restore(trashed, "a")
        assert restored == buffer

    def test_marker_cannot_be_trashed(self):
        buffer, _ = store.replace_with_deletion_marker(build(rec("1")), "1")
        assert store.move_to_trash(buffer, "1", NOW) == (buffer, False)


class TestDeletionMarker:
    def test_replace(self):
        buffer = build(rec("1", attachments=["a.png"], template="# %Y\n{{content}}", parent_id="0"))
        new, ok = store.replace_with_deletion_marker(buffer, "1")
        assert ok
        record = store.find_memo(new, "1")
        assert record.permanently_deleted
        assert record.content == DELETED_PLACEHOLDER
        assert record.parent_id == "0"
        assert record.template is None
        assert record.attachments == ()
        assert "a.png" not in new

    def test_trashed_memo_loses_trash_flags(self):
        buffer, _ = store.move_to_trash(build(rec("1")), "1", NOW)
        new, _ = store.replace_with_deletion_marker(buffer, "1")
        record = store.find_memo(new, "1")
        assert record.trashed_at is None
        assert "trashedAt" not in new

    def test_missing(self):
        assert store.replace_with_deletion_marker("", "1") == ("", False)


class TestPinAndTodo:
    def test_pin_and_unpin(self):
        buffer = build(rec("1"))
        pinned, ok = store.set_pinned(buffer, "1", NOW)
        assert ok
        assert store.find_memo(pinned, "1").pinned_at == NOW
        unpinned, _ = store.set_pinned(pinned, "1", None)
        assert unpinned == buffer

    def test_pin_is_independent_of_trash(self):
        buffer, _ = store.move_to_trash(build(rec("1")), "1", NOW)
        pinned, ok = store.set_pinned(buffer, "1", NOW)
        assert ok
        record = store.find_memo(pinned, "1")
        assert record.is_pinned and record.is_trashed

    def test_todo_toggle(self):
        buffer = store.append("", rec("1", content="buy milk"), todo_mode=True)
        done, ok = store.set_todo_completed(buffer, "1", True)
        assert ok
        assert "- [x] ## 2025-01-01 10:00" in done
        reopened, _ = store.set_todo_completed(done, "1", False)
        assert reopened == buffer

    def test_todo_without_checkbox(self):
        buffer = build(rec("1"))
        assert store.set_todo_completed(buffer, "1", True) == (buffer, False)


class TestCleanupExpired:
    NOW_DT = datetime(2025, 2, 1, tzinfo=timezone.utc)

    def test_removes_expired(self):
        buffer = build(rec("1"), rec("2"))
        buffer, _ = store.move_to_trash(buffer, "1", "2025-01-01T00:00:00Z")
        new, removed = store.cleanup_expired(buffer, 30, self.NOW_DT)
        assert removed == 1
        assert ids(new) == ["2"]

    def test_keeps_recent(self):
        buffer, _ = store.move_to_trash(build(rec("1")), "1", "2025-01-20T00:00:00Z")
        assert store.cleanup_expired(buffer, 30, self.NOW_DT) == (buffer, 0)

    def test_zero_retention_one_second_old(self):
        buffer, _ = store.move_to_trash(build(rec("1")), "1", "2025-01-31T23:59:59Z")
        new, removed = store.cleanup_expired(buffer, 0, self.NOW_DT)
        assert removed == 1
        assert ids(new) == []

    def test_deleted_flag_without_trashed_at_is_retained(self):
        buffer = '<!-- memo-id: a, timestamp: t, deleted: "true" -->\n<!--\n## h\nbody\n-->\n'
        assert store.cleanup_expired(buffer, 0, self.NOW_DT) == (buffer, 0)

    def test_unparsable_trashed_at_is_retained(self):
        buffer = '<!-- memo-id: a, timestamp: t, deleted: "true", trashedAt: "later" -->\n<!--\nbody\n-->\n'
        assert store.cleanup_expired(buffer, 0, self.NOW_DT) == (buffer, 0)

    def test_naive_now_is_local_time(self):
        buffer, _ = store.move_to_trash(build(rec("1")), "1", "2000-01-01T00:00:00Z")
        _, removed = store.cleanup_expired(buffer, 30, datetime.now() - timedelta(days=1))
        assert removed == 1

    @pytest.mark.parametrize("days", [1, 30, 365])
    def test_active_memos_never_removed(self, days):
        buffer = build(rec("1"), rec("2"))
        assert store.cleanup_expired(buffer, days, self.NOW_DT) == (buffer, 0)
