"""Entry block codec — header grammar + encode/decode (no I/O).

A day file holds free text (usually just a heading) and any number of
entry blocks:

    <!-- acta:comment
    id: 5b0c...
    created: 2026-02-18 09:30
    created_ms: 1771378200000
    tags: work, idea
    -->
    body text
    <!-- /acta:comment -->

Everything outside the markers is ignored by the parser and left untouched
on rewrite.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

START_MARKER = "<!-- acta:comment"
END_MARKER = "<!-- /acta:comment -->"

# Encoding order of header keys
HEADER_KEYS = ("id", "created", "created_ms", "tags")

_BLOCK_RE = re.compile(
    r"<!--\s*acta:comment\s*\n(?P<header>[\s\S]*?)-->\n(?P<body>[\s\S]*?)\n<!--\s*/acta:comment\s*-->"
)
_HEADER_LINE_RE = re.compile(r"^\s*([a-zA-Z0-9_]+)\s*:\s*(.*?)\s*$")
_TAG_SPLIT_RE = re.compile(r"[,、]")
_TAG_MARKER_RE = re.compile(r"^[#＃]")
# End markers inside a body gain one backslash on encode and lose one on decode
_BODY_END_RE = re.compile(r"(<!--\s*)(\\*)(/acta:comment)")
_BODY_ESCAPED_RE = re.compile(r"(<!--\s*)\\(\\*/acta:comment)")


@dataclass
class Entry:
    """One journal entry as stored in a day file."""

    id: str
    date: str
    created: str
    created_at_ms: int
    tags: list[str] = field(default_factory=list)
    body: str = ""
    source_file: Path | None = None

    def to_dict(self) -> dict:
        """Shape used across the RPC boundary (camelCase keys)."""
        return {
            "id": self.id,
            "date": self.date,
            "created": self.created,
            "createdAtMs": self.created_at_ms,
            "tags": list(self.tags),
            "body": self.body,
            "sourceFile": str(self.source_file) if self.source_file else "",
        }


@dataclass
class Header:
    """Parsed block header. Missing keys are None, unknown keys land in extra."""

    id: str | None = None
    created: str | None = None
    created_ms: str | None = None
    tags: str | None = None
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class Block:
    """A decoded block and its span in the newline-normalized file text.

    ``text[start:end]`` is the block from start marker to end marker;
    ``text[end:stop]`` is its trailing separator.
    """

    entry: Entry
    start: int
    end: int
    stop: int


# ── Text helpers ──────────────────────────────────────────────


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def detect_newline(text: str) -> str:
    """Return the newline style a file uses (CRLF wins if present at all)."""
    return "\r\n" if "\r\n" in text else "\n"


def normalize_tag(raw: object) -> str:
    text = _TAG_MARKER_RE.sub("", str(raw if raw is not None else ""))
    # a tag must not close the header comment
    while "-->" in text:
        text = text.replace("-->", "->")
    return re.sub(r"\s+", " ", text).strip()


def normalize_tags(raw_tags: Iterable[object]) -> list[str]:
    """Split on separators, normalize, drop empties and dedupe in first-seen order."""
    seen: dict[str, None] = {}
    for raw in raw_tags:
        for part in _TAG_SPLIT_RE.split(str(raw if raw is not None else "")):
            tag = normalize_tag(part)
            if tag:
                seen.setdefault(tag, None)
    return list(seen)


def parse_tag_line(line: str) -> list[str]:
    if not line.strip():
        return []
    return normalize_tags([line])


def created_to_ms(created: str) -> int:
    """Interpret a ``created`` string as local time. Unparseable → 0."""
    s = (created or "").strip()
    for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M"):
        try:
            return int(datetime.strptime(s, fmt).timestamp() * 1000)
        except ValueError:
            continue
    return 0


# ── Header grammar ────────────────────────────────────────────


def parse_header(text: str) -> Header:
    """Permissive ``key: value`` parse. Non-matching lines are skipped."""
    header = Header()
    for line in text.split("\n"):
        m = _HEADER_LINE_RE.match(line)
        if not m:
            continue
        key, value = m.group(1), m.group(2)
        if key in HEADER_KEYS:
            setattr(header, key, value)
        else:
            header.extra[key] = value
    return header


def format_header(entry: Entry) -> str:
    values = {
        "id": entry.id,
        "created": entry.created,
        "created_ms": str(entry.created_at_ms),
        "tags": ", ".join(normalize_tags(entry.tags)),
    }
    return "".join(f"{key}: {values[key]}\n" for key in HEADER_KEYS)


# ── Encode / decode ───────────────────────────────────────────


def clean_body(body: object) -> str:
    return normalize_newlines(str(body if body is not None else "")).rstrip()


def escape_body(body: str) -> str:
    return _BODY_END_RE.sub(lambda m: m.group(1) + "\\" + m.group(2) + m.group(3), body)


def unescape_body(body: str) -> str:
    return _BODY_ESCAPED_RE.sub(lambda m: m.group(1) + m.group(2), body)


def encode_block(entry: Entry, *, separator: bool = True) -> str:
    """Render one entry as a block (LF newlines), with the blank-line separator."""
    block = (
        f"{START_MARKER}\n"
        f"{format_header(entry)}"
        f"-->\n"
        f"{escape_body(clean_body(entry.body))}\n"
        f"{END_MARKER}"
    )
    return block + "\n\n" if separator else block


def _separator_end(text: str, pos: int) -> int:
    """Consume up to two newlines following an end marker."""
    for _ in range(2):
        if text.startswith("\n", pos):
            pos += 1
    return pos


def decode_blocks(text: str, date: str, source_file: Path) -> list[Block]:
    """Find every block in ``text`` (any newline style), in file order.

    Spans refer to the LF-normalized text.
    """
    normalized = normalize_newlines(text)
    blocks: list[Block] = []
    for match in _BLOCK_RE.finditer(normalized):
        header = parse_header(match.group("header"))
        created = header.created or date
        try:
            created_at_ms = int(header.created_ms or "")
        except ValueError:
            created_at_ms = 0
        entry = Entry(
            id=header.id or f"{source_file.name}:{match.start()}",
            date=date,
            created=created,
            created_at_ms=created_at_ms or created_to_ms(created),
            tags=parse_tag_line(header.tags or ""),
            body=unescape_body(match.group("body").rstrip()),
            source_file=source_file,
        )
        blocks.append(
            Block(
                entry=entry,
                start=match.start(),
                end=match.end(),
                stop=_separator_end(normalized, match.end()),
            )
        )
    return blocks


def decode_entries(text: str, date: str, source_file: Path) -> list[Entry]:
    return [block.entry for block in decode_blocks(text, date, source_file)]
