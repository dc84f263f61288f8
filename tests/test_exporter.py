"""Tests for markdown/JSON/CSV export."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone

import frontmatter
import pytest

from memolog.exporter import export_memos
from memolog.memo.types import create_memo

NOW = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def records():
    return [
        create_memo("work", "second", memo_id="2", timestamp="2025-01-02T10:00:00Z"),
        create_memo("work", "first, with comma", memo_id="1", timestamp="2025-01-01T10:00:00Z", attachments=["a.png"]),
        create_memo("home", 'say "hi"', memo_id="3", timestamp="2025-01-03T23:30:00Z"),
    ]


class TestSelection:
    def test_sorted_ascending(self, records):
        data = json.loads(export_memos(records, "json", now=NOW).content)
        assert [m["id"] for m in data["memos"]] == ["1", "2", "3"]

    def test_end_date_covers_whole_day(self, records):
        result = export_memos(records, "json", start_date="2025-01-02", end_date="2025-01-03", now=NOW)
        assert result.count == 2
        data = json.loads(result.content)
        assert [m["id"] for m in data["memos"]] == ["2", "3"]

    def test_category_filter(self, records):
        assert export_memos(records, "csv", categories=["home"], now=NOW).count == 1

    def test_unknown_format(self, records):
        with pytest.raises(ValueError):
            export_memos(records, "xml", now=NOW)


class TestFilenames:
    def test_plain(self, records):
        assert export_memos(records, "markdown", now=NOW).filename == "memolog-export-2025-02-01.md"

    def test_categories_and_range(self, records):
        result = export_memos(
            records, "csv", categories=["work", "home"], start_date="2025-01-01", end_date="2025-01-31", now=NOW
        )
        assert result.filename == "memolog-export-2025-02-01-work-home-2025-01-01-to-2025-01-31.csv"

    def test_open_ranges(self, records):
        assert export_memos(records, "json", start_date="2025-01-01", now=NOW).filename.endswith(
            "-from-2025-01-01.json"
        )
        assert export_memos(records, "json", end_date="2025-01-31", now=NOW).filename.endswith(
            "-to-2025-01-31.json"
        )


class TestRenderers:
    def test_markdown_front_matter(self, records):
        post = frontmatter.loads(export_memos(records, "markdown", now=NOW).content)
        assert post["title"] == "Memolog Export"
        assert post["total_memos"] == 3
        assert "## work" in post.content
        assert "## home" in post.content
        assert "- ![](a.png)" in post.content

    def test_markdown_without_title(self, records):
        content = export_memos(records, "markdown", include_title=False, now=NOW).content
        assert content.startswith("## work")

    def test_markdown_timestamp_format(self, records):
        content = export_memos(records, "markdown", timestamp_format="%Y/%m/%d", now=NOW).content
        assert "### 2025/01/01" in content

    def test_json(self, records):
        data = json.loads(export_memos(records, "json", categories=["work"], now=NOW).content)
        assert data["totalMemos"] == 2
        assert data["options"]["categories"] == ["work"]
        assert data["memos"][0]["attachments"] == ["a.png"]

    def test_csv_quoting(self, records):
        content = export_memos(records, "csv", now=NOW).content
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0] == ["ID", "Category", "Timestamp", "Content", "Attachments"]
        assert rows[1] == ["1", "work", "2025-01-01T10:00:00Z", "first, with comma", "a.png"]
        assert rows[3][3] == 'say "hi"'
        assert not content.endswith("\n")
