"""Memo manager: the vault, the caches and the pure memo functions, wired together.

Responsibilities:
1. Map a category + timestamp to a storage unit
2. Serve memo lists from the mtime-validated cache, parsing on a miss
3. Run every mutation as read -> pure function -> write under the unit lock
4. Invalidate the memo cache and the thread-index cache after each write
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from memolog.cache.policy import MemoCache, cache_key
from memolog.config import MemologConfig
from memolog.exporter import ExportFormat, ExportResult, export_memos
from memolog.memo import cascade, query, store
from memolog.memo.codec import format_timestamp
from memolog.memo.threads import ThreadIndexCache
from memolog.memo.types import MemoRecord, ThreadIndex, ThreadTree, create_memo, now_iso
from memolog.search_history import SearchHistory, SearchQuery
from memolog.vault import Vault

logger = logging.getLogger(__name__)


class MemoManager:
    """Owns one Vault, one MemoCache, one ThreadIndexCache and the search history."""

    def __init__(self, config: MemologConfig, vault: Vault | None = None) -> None:
        self.config = config
        self.vault = vault or Vault(config.root_dir)
        self.memo_cache = MemoCache(config.cache.capacity)
        self.thread_cache = ThreadIndexCache()
        self.search_history = SearchHistory()

    # ── Storage units ─────────────────────────────────────────

    def unit_for(self, category: str, timestamp: str | None = None) -> str:
        """Storage unit for a category at a point in time, from path_format."""
        name = format_timestamp(timestamp or now_iso(), self.config.path_format)
        name = name.replace("%C", category)
        directory = self.config.category(category).directory
        return f"{directory}/{name}" if directory else name

    def _invalidate(self, unit: str) -> None:
        self.memo_cache.invalidate_unit(unit)
        self.thread_cache.invalidate_unit(unit)

    def _mutate(self, unit: str, fn: Callable[[str], tuple[str, bool]]) -> bool:
        """Read, transform and write one unit while holding its lock."""
        with self.vault.lock(unit):
            buffer = self.vault.read_buffer(unit)
            new_buffer, ok = fn(buffer)
            if not ok:
                return False
            if new_buffer != buffer:
                self.vault.write_buffer(unit, new_buffer)
            self._invalidate(unit)
        return True

    # ── Reads ─────────────────────────────────────────────────

    def get_memos(self, unit: str, category: str = "") -> list[MemoRecord]:
        key = cache_key(unit, category)
        mtime = self.vault.modification_time(unit)
        cached = self.memo_cache.get_memos(key, mtime)
        if cached is not None:
            return cached
        if mtime is None:
            return []
        records = store.list_memos(self.vault.read_buffer(unit), category)
        self.memo_cache.set_memos(key, records, mtime)
        return records

    def get_memo(self, unit: str, memo_id: str) -> MemoRecord | None:
        return query.find_by_id(self.get_memos(unit), memo_id)

    def all_memos(self, category: str = "") -> list[MemoRecord]:
        records: list[MemoRecord] = []
        for unit in self.vault.list_units():
            records.extend(self.get_memos(unit, category))
        return records

    def locate(self, memo_id: str) -> tuple[str, MemoRecord] | None:
        """Find the unit holding memo_id by scanning every unit."""
        for unit in self.vault.list_units():
            record = self.get_memo(unit, memo_id)
            if record is not None:
                return unit, record
        return None

    def get_thread_index(self, unit: str, category: str = "") -> ThreadIndex:
        return self.thread_cache.get(cache_key(unit, category), self.get_memos(unit, category))

    def get_thread_tree(self, unit: str, root_id: str, category: str = "") -> ThreadTree | None:
        key = cache_key(unit, category)
        return self.thread_cache.get_tree(key, root_id, self.get_memos(unit, category))

    def search(
        self,
        text: str,
        category: str = "",
        case_sensitive: bool = False,
        include_trashed: bool = False,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[MemoRecord]:
        """Search every unit; the query is recorded in search_history."""
        found = query.filter_memos(
            self.all_memos(category),
            category=category,
            start=start_date,
            end=end_date,
            query=text,
            case_sensitive=case_sensitive,
            include_trashed=include_trashed,
        )
        self.search_history.add(
            SearchQuery(
                text=text,
                start_date=start_date,
                end_date=end_date,
                categories=(category,) if category else (),
                case_sensitive=case_sensitive,
            ),
            len(found),
        )
        return query.sort_with_pinned_first(found, self.config.order_for(category) if category else self.config.order)

    # ── Writes ────────────────────────────────────────────────

    def add_memo(
        self,
        category: str,
        content: str,
        *,
        attachments: Sequence[str] | None = None,
        template: str | None = None,
        timestamp: str | None = None,
        unit: str | None = None,
    ) -> MemoRecord:
        cat = self.config.category(category)
        record = create_memo(
            category,
            content,
            timestamp=timestamp,
            attachments=attachments,
            template=template or self.config.template_for(category),
        )
        unit = unit or self.unit_for(category, record.timestamp)
        self._mutate(
            unit,
            lambda buffer: (
                store.append(buffer, record, self.config.order_for(category), todo_mode=cat.use_todo_list),
                True,
            ),
        )
        logger.info("Added memo %s to %s", record.id, unit)
        return record

    def add_reply(
        self,
        unit: str,
        parent_id: str,
        content: str,
        category: str | None = None,
        *,
        attachments: Sequence[str] | None = None,
        template: str | None = None,
    ) -> MemoRecord:
        """Reply to parent_id. Raises InvalidStateError for a missing parent or category mismatch."""
        created: list[MemoRecord] = []

        def apply(buffer: str) -> tuple[str, bool]:
            parent = store.find_memo(buffer, parent_id)
            reply_category = parent.category if parent is not None else (category or "")
            new_buffer, record = cascade.add_reply(
                buffer,
                parent_id,
                content,
                category,
                order=self.config.order_for(reply_category),
                template=template or self.config.template_for(reply_category),
                attachments=attachments,
                todo_mode=self.config.category(reply_category).use_todo_list,
            )
            created.append(record)
            return new_buffer, True

        self._mutate(unit, apply)
        logger.info("Added reply %s under %s in %s", created[0].id, parent_id, unit)
        return created[0]

    def update_memo(self, unit: str, memo_id: str, content: str) -> bool:
        def apply(buffer: str) -> tuple[str, bool]:
            record = store.find_memo(buffer, memo_id)
            todo_mode = record is not None and self.config.category(record.category).use_todo_list
            return store.update(buffer, memo_id, lambda _: content, todo_mode=todo_mode)

        ok = self._mutate(unit, apply)
        self._log_result(ok, "Updated", memo_id, unit)
        return ok

    def delete_memo(self, unit: str, memo_id: str) -> bool:
        """Hard delete a single block, replies untouched."""
        ok = self._mutate(unit, lambda buffer: store.remove(buffer, memo_id))
        self._log_result(ok, "Deleted", memo_id, unit)
        return ok

    def move_to_trash(self, unit: str, memo_id: str) -> bool:
        now = now_iso()
        ok = self._mutate(unit, lambda buffer: store.move_to_trash(buffer, memo_id, now))
        self._log_result(ok, "Trashed", memo_id, unit)
        return ok

    def restore_from_trash(self, unit: str, memo_id: str) -> bool:
        ok = self._mutate(unit, lambda buffer: store.restore(buffer, memo_id))
        self._log_result(ok, "Restored", memo_id, unit)
        return ok

    def remove(self, unit: str, memo_id: str, category: str = "") -> bool:
        """Trash when the trash is enabled, otherwise delete with descendants."""
        if self.config.trash.enabled:
            return self.move_to_trash(unit, memo_id)
        return self.delete_with_descendants(unit, memo_id, category)

    def pin(self, unit: str, memo_id: str) -> bool:
        now = now_iso()
        ok = self._mutate(unit, lambda buffer: store.set_pinned(buffer, memo_id, now))
        self._log_result(ok, "Pinned", memo_id, unit)
        return ok

    def unpin(self, unit: str, memo_id: str) -> bool:
        ok = self._mutate(unit, lambda buffer: store.set_pinned(buffer, memo_id, None))
        self._log_result(ok, "Unpinned", memo_id, unit)
        return ok

    def set_todo_completed(self, unit: str, memo_id: str, completed: bool) -> bool:
        ok = self._mutate(unit, lambda buffer: store.set_todo_completed(buffer, memo_id, completed))
        self._log_result(ok, "Completed" if completed else "Reopened", memo_id, unit)
        return ok

    def delete_with_descendants(self, unit: str, memo_id: str, category: str = "") -> bool:
        ok = self._mutate(unit, lambda buffer: cascade.delete_with_descendants(buffer, memo_id, category))
        self._log_result(ok, "Deleted thread", memo_id, unit)
        return ok

    def trash_with_descendants(self, unit: str, memo_id: str, category: str = "") -> bool:
        now = now_iso()
        ok = self._mutate(unit, lambda buffer: cascade.trash_with_descendants(buffer, memo_id, now, category))
        self._log_result(ok, "Trashed thread", memo_id, unit)
        return ok

    def restore_with_descendants(self, unit: str, memo_id: str) -> bool:
        """Raises InvalidStateError when the memo is not in the trash."""
        ok = self._mutate(unit, lambda buffer: cascade.restore_with_descendants(buffer, memo_id))
        self._log_result(ok, "Restored thread", memo_id, unit)
        return ok

    def cleanup_trash(self, unit: str | None = None, now: datetime | None = None) -> int:
        """Purge expired trash in one unit, or in every unit. Returns blocks removed."""
        now = now or datetime.now().astimezone()
        retention = self.config.trash.retention_days
        total = 0
        for target in [unit] if unit else self.vault.list_units():
            removed: list[int] = []

            def apply(buffer: str) -> tuple[str, bool]:
                new_buffer, count = store.cleanup_expired(buffer, retention, now)
                removed.append(count)
                return new_buffer, count > 0

            self._mutate(target, apply)
            total += sum(removed)
        if total:
            logger.info("Cleaned up %d expired memos", total)
        return total

    def export(
        self,
        fmt: ExportFormat,
        categories: Sequence[str] | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        include_title: bool = True,
    ) -> ExportResult:
        """Export active memos from every unit."""
        records = query.active(self.all_memos())
        return export_memos(
            records,
            fmt,
            start_date=start_date,
            end_date=end_date,
            categories=categories,
            include_title=include_title,
        )

    def clear_caches(self) -> None:
        self.memo_cache.clear_all()
        self.thread_cache.clear()

    @staticmethod
    def _log_result(ok: bool, action: str, memo_id: str, unit: str) -> None:
        if ok:
            logger.info("%s memo %s in %s", action, memo_id, unit)
        else:
            logger.warning("%s failed: memo %s not found or not applicable in %s", action, memo_id, unit)
