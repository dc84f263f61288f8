"""Filtering and sorting over decoded memo lists. Inputs are never mutated."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timezone

from memolog.memo.codec import parse_iso, to_aware
from memolog.memo.threads import build_thread_index
from memolog.memo.types import MemoRecord, SortOrder

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def instant(timestamp: str | None) -> datetime | None:
    """Timezone-aware datetime for a record timestamp, or None."""
    dt = parse_iso(timestamp)
    return to_aware(dt) if dt is not None else None


def date_bound(value: str, end: bool = False) -> datetime | None:
    """A bare YYYY-MM-DD covers the whole UTC day; anything else is parsed as ISO."""
    if len(value) == 10:
        try:
            day = date.fromisoformat(value)
        except ValueError:
            return None
        if end:
            return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)
        return datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
    return instant(value)


def _bound(value: str | datetime | None, end: bool = False) -> datetime | None:
    if isinstance(value, datetime):
        return to_aware(value)
    return date_bound(value, end) if value else None


def _sort_key(timestamp: str | None) -> datetime:
    return instant(timestamp) or _EPOCH


def filter_by_category(records: Iterable[MemoRecord], category: str) -> list[MemoRecord]:
    """Empty category keeps everything."""
    if not category:
        return list(records)
    return [r for r in records if r.category == category]


def filter_by_date_range(
    records: Iterable[MemoRecord],
    start: str | datetime | None = None,
    end: str | datetime | None = None,
) -> list[MemoRecord]:
    """Records whose timestamp lies within [start, end]. Both bounds inclusive.

    A bare date as end runs through the last millisecond of that UTC day.
    """
    lo = _bound(start)
    hi = _bound(end, end=True)
    result = []
    for r in records:
        at = instant(r.timestamp)
        if at is None:
            continue
        if lo is not None and at < lo:
            continue
        if hi is not None and at > hi:
            continue
        result.append(r)
    return result


def sort_by_timestamp(records: Iterable[MemoRecord], order: SortOrder = "asc") -> list[MemoRecord]:
    return sorted(records, key=lambda r: _sort_key(r.timestamp), reverse=order == "desc")


def search_content(
    records: Iterable[MemoRecord],
    query: str,
    case_sensitive: bool = False,
) -> list[MemoRecord]:
    """Substring match on content; an empty query matches everything."""
    if not query:
        return list(records)
    if case_sensitive:
        return [r for r in records if query in r.content]
    needle = query.casefold()
    return [r for r in records if needle in r.content.casefold()]


def pinned(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    return [r for r in records if r.is_pinned]


def unpinned(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    return [r for r in records if not r.is_pinned]


def active(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    return [r for r in records if r.is_active]


def trashed(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    return [r for r in records if r.is_trashed]


def with_attachments(records: Iterable[MemoRecord]) -> list[MemoRecord]:
    return [r for r in records if r.attachments]


def filter_memos(
    records: Iterable[MemoRecord],
    *,
    category: str = "",
    start: str | None = None,
    end: str | None = None,
    query: str = "",
    case_sensitive: bool = False,
    include_trashed: bool = False,
    only_pinned: bool = False,
) -> list[MemoRecord]:
    """Combine the filters above. Trashed and deleted records are excluded unless asked for."""
    result = list(records) if include_trashed else active(records)
    result = filter_by_category(result, category)
    if start or end:
        result = filter_by_date_range(result, start, end)
    result = search_content(result, query, case_sensitive)
    if only_pinned:
        result = pinned(result)
    return result


def sort_with_pinned_first(records: Sequence[MemoRecord], order: SortOrder = "asc") -> list[MemoRecord]:
    """Pinned records first, most recently pinned on top; the rest by timestamp."""
    head = sorted(pinned(records), key=lambda r: _sort_key(r.pinned_at), reverse=True)
    return head + sort_by_timestamp(unpinned(records), order)


def find_by_id(records: Iterable[MemoRecord], memo_id: str) -> MemoRecord | None:
    return next((r for r in records if r.id == memo_id), None)


def get_descendants(memo_id: str, records: Sequence[MemoRecord]) -> list[MemoRecord]:
    """All replies below memo_id, breadth-first."""
    by_id = {r.id: r for r in records}
    ids = build_thread_index(records).descendants_of(memo_id)
    return [by_id[i] for i in ids]


def group_by_category(records: Iterable[MemoRecord]) -> dict[str, list[MemoRecord]]:
    """Records grouped by category, categories in first-seen order."""
    groups: dict[str, list[MemoRecord]] = {}
    for r in records:
        groups.setdefault(r.category, []).append(r)
    return groups
