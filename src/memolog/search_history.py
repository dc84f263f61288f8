"""Bounded history of memo searches, most recent first.

Repeating a search moves it back to the top and bumps its use count, so
`frequent` ranks by how often a query was run. The history can be exported
to and imported from JSON.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, replace

from memolog.memo.types import now_iso

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 50


@dataclass(frozen=True)
class SearchQuery:
    text: str = ""
    start_date: str | None = None
    end_date: str | None = None
    categories: tuple[str, ...] = ()
    case_sensitive: bool = False

    def key(self) -> tuple:
        """Identity of a query; category order does not matter."""
        return (
            self.text,
            self.start_date or "",
            self.end_date or "",
            tuple(sorted(self.categories)),
            self.case_sensitive,
        )


@dataclass(frozen=True)
class SearchHistoryEntry:
    query: SearchQuery
    result_count: int
    timestamp: str = field(default_factory=now_iso)
    id: str = field(default_factory=lambda: f"search-{uuid.uuid4().hex[:12]}")
    count: int = 1


class SearchHistory:
    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries: list[SearchHistoryEntry] = []

    @property
    def max_size(self) -> int:
        return self._max_size

    @max_size.setter
    def max_size(self, size: int) -> None:
        if size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = size
        del self._entries[size:]

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, query: SearchQuery, result_count: int) -> SearchHistoryEntry:
        """Record a search; a repeated query replaces its older entry."""
        key = query.key()
        previous = next((e for e in self._entries if e.query.key() == key), None)
        entry = SearchHistoryEntry(query=query, result_count=result_count)
        if previous is not None:
            self._entries.remove(previous)
            entry = replace(entry, count=previous.count + 1)
        self._entries.insert(0, entry)
        del self._entries[self._max_size :]
        return entry

    def entries(self, limit: int | None = None) -> list[SearchHistoryEntry]:
        return list(self._entries if limit is None else self._entries[:limit])

    def recent(self, limit: int = 10) -> list[SearchHistoryEntry]:
        return self._entries[:limit]

    def frequent(self, limit: int = 10) -> list[SearchHistoryEntry]:
        """Most used queries first; ties keep recency order."""
        return sorted(self._entries, key=lambda e: e.count, reverse=True)[:limit]

    def get(self, entry_id: str) -> SearchHistoryEntry | None:
        return next((e for e in self._entries if e.id == entry_id), None)

    def remove(self, entry_id: str) -> bool:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.id != entry_id]
        return len(self._entries) < before

    def clear(self) -> None:
        self._entries.clear()

    def statistics(self) -> dict:
        total = sum(e.count for e in self._entries)
        results = sum(e.result_count for e in self._entries)
        top = self.frequent(1)
        return {
            "total_searches": total,
            "unique_queries": len(self._entries),
            "average_results": round(results / len(self._entries), 1) if self._entries else 0.0,
            "most_frequent": top[0] if top else None,
        }

    # ── JSON ──────────────────────────────────────────────────

    def export_json(self) -> str:
        return json.dumps([asdict(e) for e in self._entries], ensure_ascii=False, indent=2)

    def import_json(self, text: str) -> bool:
        """Replace the history with an exported one; False leaves it unchanged."""
        try:
            raw = json.loads(text)
            if not isinstance(raw, list):
                raise TypeError("expected a list of entries")
            entries = [_entry_from_dict(item) for item in raw]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning("Ignoring invalid search history: %s", e)
            return False
        self._entries = entries[: self._max_size]
        return True


def _entry_from_dict(item: dict) -> SearchHistoryEntry:
    if not item.get("id") or not item.get("timestamp"):
        raise KeyError("id and timestamp are required")
    q = item["query"]
    query = SearchQuery(
        text=q.get("text", ""),
        start_date=q.get("start_date"),
        end_date=q.get("end_date"),
        categories=tuple(q.get("categories", ())),
        case_sensitive=bool(q.get("case_sensitive", False)),
    )
    return SearchHistoryEntry(
        query=query,
        result_count=int(item.get("result_count", 0)),
        timestamp=item["timestamp"],
        id=item["id"],
        count=int(item.get("count", 1)),
    )
