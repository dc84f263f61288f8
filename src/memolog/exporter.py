"""Export memo lists as markdown, JSON or CSV."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import frontmatter

from memolog.memo.codec import format_timestamp
from memolog.memo.query import date_bound, group_by_category, instant, sort_by_timestamp
from memolog.memo.types import MemoRecord

logger = logging.getLogger(__name__)

ExportFormat = Literal["markdown", "json", "csv"]

_EXTENSIONS = {"markdown": "md", "json": "json", "csv": "csv"}
_CSV_HEADER = ["ID", "Category", "Timestamp", "Content", "Attachments"]


@dataclass(frozen=True)
class ExportResult:
    content: str
    count: int
    filename: str


def select(
    records: Iterable[MemoRecord],
    start_date: str | None = None,
    end_date: str | None = None,
    categories: Sequence[str] | None = None,
) -> list[MemoRecord]:
    """Apply the export filters and sort oldest first."""
    selected = list(records)
    lo = date_bound(start_date) if start_date else None
    hi = date_bound(end_date, end=True) if end_date else None
    if lo is not None or hi is not None:
        kept = []
        for r in selected:
            at = instant(r.timestamp)
            if at is None:
                continue
            if (lo is None or at >= lo) and (hi is None or at <= hi):
                kept.append(r)
        selected = kept
    if categories:
        selected = [r for r in selected if r.category in categories]
    return sort_by_timestamp(selected, "asc")


def export_filename(
    extension: str,
    now: datetime,
    start_date: str | None = None,
    end_date: str | None = None,
    categories: Sequence[str] | None = None,
) -> str:
    name = f"memolog-export-{now.astimezone(timezone.utc).date().isoformat()}"
    if categories:
        name += "-" + "-".join(categories)
    if start_date and end_date:
        name += f"-{start_date}-to-{end_date}"
    elif start_date:
        name += f"-from-{start_date}"
    elif end_date:
        name += f"-to-{end_date}"
    return f"{name}.{extension}"


# ── Renderers ───────────────────────────────────────────────


def to_markdown(
    records: Sequence[MemoRecord],
    now: datetime,
    include_title: bool = True,
    timestamp_format: str | None = None,
) -> str:
    lines: list[str] = []
    for category, memos in group_by_category(records).items():
        lines += [f"## {category}", ""]
        for memo in memos:
            stamp = format_timestamp(memo.timestamp, timestamp_format) if timestamp_format else memo.timestamp
            lines += [f"### {stamp}", "", memo.content, ""]
            if memo.attachments:
                lines.append("**Attachments:**")
                lines += [f"- ![]({name})" for name in memo.attachments]
                lines.append("")
            lines += ["---", ""]
    body = "\n".join(lines)

    if not include_title:
        return body
    post = frontmatter.Post(
        f"# Memolog Export\n\n{body}",
        title="Memolog Export",
        exported_at=now.isoformat(),
        total_memos=len(records),
    )
    return frontmatter.dumps(post) + "\n"


def to_json(
    records: Sequence[MemoRecord],
    now: datetime,
    start_date: str | None = None,
    end_date: str | None = None,
    categories: Sequence[str] | None = None,
) -> str:
    data = {
        "exportDate": now.isoformat(),
        "totalMemos": len(records),
        "options": {
            "startDate": start_date,
            "endDate": end_date,
            "categories": list(categories) if categories else None,
        },
        "memos": [
            {
                "id": r.id,
                "category": r.category,
                "timestamp": r.timestamp,
                "content": r.content,
                "attachments": list(r.attachments),
            }
            for r in records
        ],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def to_csv(records: Sequence[MemoRecord]) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(_CSV_HEADER)
    for r in records:
        writer.writerow([r.id, r.category, r.timestamp, r.content, "; ".join(r.attachments)])
    return out.getvalue().rstrip("\n")


def export_memos(
    records: Iterable[MemoRecord],
    fmt: ExportFormat,
    start_date: str | None = None,
    end_date: str | None = None,
    categories: Sequence[str] | None = None,
    include_title: bool = True,
    timestamp_format: str | None = None,
    now: datetime | None = None,
) -> ExportResult:
    """Filter, sort and render records in the requested format."""
    if fmt not in _EXTENSIONS:
        raise ValueError(f"unknown export format: {fmt!r}")
    now = now or datetime.now(timezone.utc)
    selected = select(records, start_date, end_date, categories)

    if fmt == "markdown":
        content = to_markdown(selected, now, include_title, timestamp_format)
    elif fmt == "json":
        content = to_json(selected, now, start_date, end_date, categories)
    else:
        content = to_csv(selected)

    filename = export_filename(_EXTENSIONS[fmt], now, start_date, end_date, categories)
    logger.info("Exported %d memos as %s", len(selected), fmt)
    return ExportResult(content=content, count=len(selected), filename=filename)
