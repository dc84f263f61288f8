"""Memo block codec: one MemoRecord <-> one block of plain text.

A block is a one-line HTML comment header followed by the rendered body:

    <!-- memo-id: ID, timestamp: TS, category: "work", parent-id: PID -->
    ## 2025-11-04 10:00
    body text

    Attachments: [[photo.png]], [[notes.pdf]]

Header grammar, scanned left to right by `parse_header`:

    header := "<!--" field ("," field)* "-->"
    field  := key ":" value
    key    := [A-Za-z][A-Za-z0-9_-]*
    value  := json-string | bare text up to the next ","

Quoted values are JSON strings, so commas and quotes inside a category or
template are safe. Malformed fragments are recovered, never raised.

Content lines starting with ``<!--`` or the attachment label are written with
a leading backslash so they cannot start a new block or pass for attachments.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime

from memolog.memo.types import DELETED_PLACEHOLDER, MemoRecord, new_memo_id, now_iso

logger = logging.getLogger(__name__)

CONTENT_TOKEN = "{{content}}"
FALLBACK_TEMPLATE = "## %Y-%m-%d %H:%M"
ATTACHMENT_LABEL = "Attachments: "

ID_KEYS = ("memo-id", "id")
TIMESTAMP_KEYS = ("timestamp", "ts")

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_DIRECTIVE = re.compile(r"%([YyBbmdAauHIMSs])")
_HEADER_LINE = re.compile(r"^\s*<!--(.*)-->\s*$")
_KEY = re.compile(r"[A-Za-z][\w-]*")
_CHECKBOX = re.compile(r"^-\s*\[([x ])\]\s+")
_LEGACY_TIMESTAMP = re.compile(r"(\d{4}-\d{2}-\d{2}[T\s]\d{2}:\d{2})")
_ATTACHMENT_REF = re.compile(r"\[\[([^\]]+)\]\]")
# Content lines that could pass for a block header or the attachment line.
_ESCAPABLE = re.compile(r"^(\\*)(?=<!--|" + re.escape(ATTACHMENT_LABEL) + ")", re.MULTILINE)
_ESCAPED = re.compile(r"^\\(\\*)(?=<!--|" + re.escape(ATTACHMENT_LABEL) + ")", re.MULTILINE)


# ── Timestamps ──────────────────────────────────────────────


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; None when missing or unparsable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_aware(dt: datetime) -> datetime:
    """Naive datetimes are local time."""
    return dt if dt.tzinfo is not None else dt.astimezone()


def _directive_value(code: str, dt: datetime) -> str:
    if code == "Y":
        return str(dt.year)
    if code == "y":
        return f"{dt.year % 100:02d}"
    if code == "B":
        return _MONTHS[dt.month - 1]
    if code == "b":
        return _MONTHS[dt.month - 1][:3]
    if code == "m":
        return f"{dt.month:02d}"
    if code == "d":
        return f"{dt.day:02d}"
    if code == "A":
        return _WEEKDAYS[dt.weekday()]
    if code == "a":
        return _WEEKDAYS[dt.weekday()][:3]
    if code == "u":
        return str(dt.isoweekday())
    if code == "H":
        return f"{dt.hour:02d}"
    if code == "I":
        return f"{dt.hour % 12 or 12:02d}"
    if code == "M":
        return f"{dt.minute:02d}"
    if code == "S":
        return f"{dt.second:02d}"
    # %s
    return str(int(to_aware(dt).timestamp()))


def format_timestamp(timestamp: str, fmt: str) -> str:
    """Expand date directives in fmt against timestamp, in a single pass.

    The timestamp is rendered in the offset it was written with. An
    unparsable timestamp leaves fmt untouched.
    """
    dt = parse_iso(timestamp)
    if dt is None:
        return fmt
    return _DIRECTIVE.sub(lambda m: _directive_value(m.group(1), dt), fmt)


# ── Header grammar ──────────────────────────────────────────


@dataclass(frozen=True)
class HeaderField:
    """A header value exactly as written, plus whether it was a JSON string."""

    raw: str
    quoted: bool = False

    def text(self) -> str | None:
        """Decoded value; None when a quoted value is not a valid JSON string."""
        if not self.quoted:
            return self.raw
        try:
            value = json.loads(self.raw)
        except ValueError:
            return None
        return value if isinstance(value, str) else None

    @classmethod
    def quote(cls, value: str) -> HeaderField:
        # ">" is escaped so no value can close the surrounding comment.
        return cls(json.dumps(value, ensure_ascii=False).replace(">", "\\u003e"), quoted=True)


HeaderFields = dict[str, HeaderField]


def _closing_quote(text: str, start: int) -> int | None:
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i
        i += 1
    return None


def _next_comma(text: str, pos: int) -> int:
    nxt = text.find(",", pos)
    return len(text) if nxt == -1 else nxt


def _scan_fields(fragment: str) -> HeaderFields:
    fields: HeaderFields = {}
    pos, end = 0, len(fragment)
    while pos < end:
        while pos < end and fragment[pos] in " \t,":
            pos += 1
        if pos >= end:
            break

        m = _KEY.match(fragment, pos)
        if m is None:
            pos = _next_comma(fragment, pos) + 1
            continue
        key = m.group()
        pos = m.end()
        while pos < end and fragment[pos] in " \t":
            pos += 1
        if pos >= end or fragment[pos] != ":":
            pos = _next_comma(fragment, pos) + 1
            continue
        pos += 1
        while pos < end and fragment[pos] in " \t":
            pos += 1

        close = _closing_quote(fragment, pos) if pos < end and fragment[pos] == '"' else None
        if close is not None:
            field = HeaderField(fragment[pos : close + 1], quoted=True)
            pos = _next_comma(fragment, close + 1) + 1
        else:
            stop = _next_comma(fragment, pos)
            field = HeaderField(fragment[pos:stop].strip())
            pos = stop + 1

        # First occurrence wins.
        fields.setdefault(key, field)
    return fields


def parse_header(line: str) -> HeaderFields | None:
    """Parse a header line into ordered fields; None if it is not a header."""
    m = _HEADER_LINE.match(line)
    if m is None:
        return None
    return _scan_fields(m.group(1))


def render_header(fields: HeaderFields) -> str:
    body = ", ".join(f"{key}: {field.raw}" for key, field in fields.items())
    return f"<!-- {body} -->"


def field_text(fields: HeaderFields, *keys: str) -> str | None:
    """Decoded, stripped value of the first present key; None if empty."""
    for key in keys:
        field = fields.get(key)
        if field is None:
            continue
        value = field.text()
        if value is not None and value.strip():
            return value.strip()
        return None
    return None


def header_id(block: str) -> str | None:
    """Memo id of a block's header, without decoding the body."""
    first_line = block.lstrip("\r\n").split("\n", 1)[0]
    fields = parse_header(first_line)
    if fields is None:
        return None
    return field_text(fields, *ID_KEYS)


# ── Body helpers ────────────────────────────────────────────


def comment_out(body: str) -> str:
    """Wrap a body in comment delimiters (the trashed encoding)."""
    text = body.strip()
    return f"<!--\n{text}\n-->" if text else ""


def uncomment(body: str) -> str:
    text = body.strip()
    if len(text) >= 7 and text.startswith("<!--") and text.endswith("-->"):
        return text[4:-3].strip()
    return text


def is_commented_out(body: str) -> bool:
    text = body.strip()
    return len(text) >= 7 and text.startswith("<!--") and text.endswith("-->")


def escape_content(content: str) -> str:
    """Backslash-escape content lines starting with ``<!--`` or the attachment label.

    Lines that already start with backslashes before either prefix get one
    more, so unescape_content is an exact inverse.
    """
    return _ESCAPABLE.sub(r"\\\1", content)


def unescape_content(content: str) -> str:
    return _ESCAPED.sub(r"\1", content)


def assemble_block(header: str, body: str) -> str:
    return f"{header}\n{body}\n" if body else f"{header}\n"


def split_block(block: str) -> tuple[str, str]:
    """Split a block into its first line and the stripped remainder."""
    text = block.replace("\r\n", "\n").strip("\n")
    first, _, rest = text.partition("\n")
    return first, rest.strip()


# ── Encode ──────────────────────────────────────────────────


def render_body(content: str, timestamp: str, template: str, todo_mode: bool = False) -> str:
    expanded = format_timestamp(timestamp, template)
    if CONTENT_TOKEN in template:
        body = expanded.replace(CONTENT_TOKEN, content)
    else:
        body = f"{expanded}\n{content}"

    if todo_mode and not _CHECKBOX.match(content):
        body = "- [ ] " + body.replace("\n", "\n  ")
    return body


def header_fields(record: MemoRecord) -> HeaderFields:
    fields: HeaderFields = {
        "memo-id": HeaderField(record.id),
        "timestamp": HeaderField(record.timestamp),
    }
    if record.category:
        fields["category"] = HeaderField.quote(record.category)
    if record.permanently_deleted:
        if record.parent_id:
            fields["parent-id"] = HeaderField(record.parent_id)
        fields["permanently-deleted"] = HeaderField.quote("true")
        return fields

    if record.template:
        fields["template"] = HeaderField.quote(record.template)
    if record.trashed_at is not None:
        fields["deleted"] = HeaderField.quote("true")
        fields["trashedAt"] = HeaderField.quote(record.trashed_at)
    if record.pinned_at is not None:
        fields["pinnedAt"] = HeaderField.quote(record.pinned_at)
    if record.parent_id:
        fields["parent-id"] = HeaderField(record.parent_id)
    return fields


def deletion_marker(record: MemoRecord) -> str:
    """Minimal block left behind by a permanent delete."""
    fields = header_fields(
        MemoRecord(
            id=record.id,
            category=record.category,
            timestamp=record.timestamp,
            content=DELETED_PLACEHOLDER,
            parent_id=record.parent_id,
            permanently_deleted=True,
        )
    )
    return assemble_block(render_header(fields), DELETED_PLACEHOLDER)


def encode_body(record: MemoRecord, default_template: str | None = None, todo_mode: bool = False) -> str:
    """Rendered body plus attachment line, before any trash wrapping."""
    template = record.template or default_template or FALLBACK_TEMPLATE
    body = render_body(escape_content(record.content), record.timestamp, template, todo_mode)
    if record.attachments:
        refs = ", ".join(f"[[{name}]]" for name in record.attachments)
        body = f"{body}\n\n{ATTACHMENT_LABEL}{refs}"
    return body


def encode(record: MemoRecord, default_template: str | None = None, todo_mode: bool = False) -> str:
    """Serialize a record to a newline-terminated block."""
    if record.permanently_deleted:
        return deletion_marker(record)

    body = encode_body(record, default_template, todo_mode)
    if record.trashed_at is not None:
        body = comment_out(body)
    return assemble_block(render_header(header_fields(record)), body)


# ── Decode ──────────────────────────────────────────────────


def _legacy_timestamp(lines: list[str]) -> str | None:
    if not lines:
        return None
    m = _LEGACY_TIMESTAMP.search(lines[0])
    return m.group(1).replace(" ", "T") if m else None


def _split_attachments(body: str) -> tuple[str, tuple[str, ...]]:
    head, sep, last = body.rpartition("\n")
    line = last if sep else body
    if line.startswith(ATTACHMENT_LABEL):
        refs = _ATTACHMENT_REF.findall(line)
        if refs:
            return (head.rstrip() if sep else ""), tuple(refs)
    return body, ()


def _strip_todo_wrapper(body: str) -> str:
    """Undo the todo-mode checkbox prefix and two-space indent."""
    m = _CHECKBOX.match(body)
    if m is None:
        return body
    return body[m.end() :].replace("\n  ", "\n")


def _recover_content(body: str, timestamp: str, template: str | None) -> str:
    if template and CONTENT_TOKEN in template:
        parts = template.split(CONTENT_TOKEN)
        prefix = format_timestamp(timestamp, parts[0]).lstrip()
        suffix = format_timestamp(timestamp, parts[-1]).rstrip()
        rest = body
        if prefix and rest.startswith(prefix):
            rest = rest[len(prefix) :]
        if suffix and rest.endswith(suffix):
            rest = rest[: -len(suffix)]
        if len(parts) > 2:
            # Content repeated several times; keep the first copy.
            middle = format_timestamp(timestamp, parts[1])
            if middle and middle in rest:
                rest = rest.split(middle, 1)[0]
        return rest.strip()

    if template:
        expanded = format_timestamp(timestamp, template).strip()
        if expanded and body.startswith(expanded):
            return body[len(expanded) :].strip()

    # Generated heading line first, content after it.
    _, _, tail = body.partition("\n")
    return tail.strip()


def decode(
    block: str,
    fallback_category: str = "",
    default_template: str | None = None,
) -> MemoRecord | None:
    """Parse a block back into a record; None for an empty block."""
    text = block.replace("\r\n", "\n").strip()
    if not text:
        return None

    lines = text.split("\n")
    parsed = parse_header(lines[0])
    body_lines = lines if parsed is None else lines[1:]
    fields: HeaderFields = parsed or {}

    memo_id = field_text(fields, *ID_KEYS) or new_memo_id()
    timestamp = field_text(fields, *TIMESTAMP_KEYS) or _legacy_timestamp(body_lines) or now_iso()

    category = fallback_category
    category_field = fields.get("category")
    if category_field is not None:
        decoded = category_field.text()
        category = (decoded if decoded is not None else category_field.raw) or fallback_category

    template: str | None = None
    template_field = fields.get("template")
    if template_field is not None:
        template = template_field.text() if template_field.quoted else None
        if template is None:
            logger.warning("Dropping malformed template in memo %s: %s", memo_id, template_field.raw)
        template = template or None

    trashed_at: str | None = None
    if field_text(fields, "deleted") == "true":
        candidate = field_text(fields, "trashedAt")
        if parse_iso(candidate) is not None:
            trashed_at = candidate

    parent_id = field_text(fields, "parent-id")
    if parent_id == memo_id:
        parent_id = None

    if field_text(fields, "permanently-deleted") == "true":
        return MemoRecord(
            id=memo_id,
            category=category,
            timestamp=timestamp,
            content=DELETED_PLACEHOLDER,
            parent_id=parent_id,
            permanently_deleted=True,
        )

    effective = template or default_template
    body = uncomment("\n".join(body_lines))
    body, attachments = _split_attachments(body)
    if not (effective or "").startswith(CONTENT_TOKEN):
        body = _strip_todo_wrapper(body)
    content = unescape_content(_recover_content(body, timestamp, effective))
    if not attachments:
        attachments = tuple(_ATTACHMENT_REF.findall(content))

    return MemoRecord(
        id=memo_id,
        category=category,
        timestamp=timestamp,
        content=content,
        attachments=attachments,
        template=template,
        parent_id=parent_id,
        trashed_at=trashed_at,
        pinned_at=field_text(fields, "pinnedAt"),
    )
