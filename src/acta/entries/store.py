"""Entry store — per-day Markdown files under one data directory.

Day files are the source of truth; nothing is cached between calls. There
is no cross-process locking: two writers racing on one day file means the
last write wins.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from pathlib import Path

from acta.entries.codec import (
    Block,
    Entry,
    clean_body,
    decode_blocks,
    decode_entries,
    detect_newline,
    encode_block,
    normalize_newlines,
    normalize_tags,
)

logger = logging.getLogger(__name__)

DAY_FILE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")
DAY_FILE_SUFFIX = ".md"


class ValidationError(ValueError):
    """Input rejected before touching the disk (e.g. empty body)."""


def _read_text(path: Path) -> str:
    # newline="" keeps CRLF intact so the file's style can be detected
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: Path, text: str, newline: str) -> None:
    if newline != "\n":
        text = text.replace("\n", newline)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


class EntryStore:
    """Create/list/update/delete journal entries in day files."""

    def __init__(
        self,
        data_dir: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.data_dir = Path(data_dir)
        self._clock = clock

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def day_file(self, date: str) -> Path:
        return self.data_dir / f"{date}{DAY_FILE_SUFFIX}"

    def _day_files(self) -> list[Path]:
        """Day files in ascending filename order. Unlistable dir → []."""
        try:
            names = [p.name for p in self.data_dir.iterdir()]
        except OSError as e:
            logger.warning("Cannot list data directory %s: %s", self.data_dir, e)
            return []
        return [self.data_dir / name for name in sorted(names) if DAY_FILE_RE.match(name)]

    def _scan(self) -> Iterator[tuple[Path, str]]:
        """Yield (path, text) for each readable day file."""
        for path in self._day_files():
            try:
                yield path, _read_text(path)
            except OSError as e:
                logger.warning("Skipping unreadable day file %s: %s", path, e)

    # ── Read ──────────────────────────────────────────────────

    def list(self) -> list[Entry]:
        """All entries, newest first (stable on equal sort keys)."""
        self.ensure_data_dir()
        entries: list[Entry] = []
        for path, text in self._scan():
            entries.extend(decode_entries(text, path.stem, path))
        entries.sort(key=lambda e: e.created_at_ms or 0, reverse=True)
        return entries

    # ── Write ─────────────────────────────────────────────────

    def add(self, body: str, tags: Iterable[str] = ()) -> Entry:
        """Append a new entry to today's day file."""
        text = clean_body(body).strip()
        if not text:
            raise ValidationError("Entry body is empty")

        self.ensure_data_dir()
        now = self._clock()
        date = now.strftime("%Y-%m-%d")
        path = self.day_file(date)

        try:
            with open(path, "x", encoding="utf-8", newline="") as f:
                f.write(f"# {date}\n\n")
            first_of_day = True
            newline = "\n"
        except FileExistsError:
            first_of_day = False
            newline = detect_newline(_read_text(path))

        entry = Entry(
            id=str(uuid.uuid4()),
            date=date,
            # The first entry of a day is already dated by the file name/heading
            created=date if first_of_day else now.strftime("%Y-%m-%d %H:%M"),
            created_at_ms=int(now.timestamp() * 1000),
            tags=normalize_tags(tags),
            body=text,
            source_file=path,
        )

        block = encode_block(entry)
        if newline != "\n":
            block = block.replace("\n", newline)
        with open(path, "a", encoding="utf-8", newline="") as f:
            f.write(block)

        logger.info("Added entry %s to %s", entry.id, path.name)
        return entry

    def update(self, entry_id: str, body: str, tags: Iterable[str] = ()) -> bool:
        """Replace body/tags of an entry in place. False if no file holds the id."""
        text = clean_body(body).strip()
        if not text:
            raise ValidationError("Entry body is empty")
        clean_tags = normalize_tags(tags)

        def replace(block: Block, normalized: str) -> str:
            old = block.entry
            new = Entry(
                id=old.id,
                date=old.date,
                created=old.created,
                created_at_ms=old.created_at_ms,
                tags=clean_tags,
                body=text,
                source_file=old.source_file,
            )
            return (
                normalized[: block.start]
                + encode_block(new, separator=False)
                + normalized[block.end :]
            )

        found = self._rewrite_first(entry_id, replace)
        if found:
            logger.info("Updated entry %s", entry_id)
        return found

    def delete(self, entry_id: str) -> bool:
        """Remove an entry block and its separator. False if not found."""

        def remove(block: Block, normalized: str) -> str:
            return normalized[: block.start] + normalized[block.stop :]

        found = self._rewrite_first(entry_id, remove)
        if found:
            logger.info("Deleted entry %s", entry_id)
        return found

    def _rewrite_first(
        self,
        entry_id: str,
        edit: Callable[[Block, str], str],
    ) -> bool:
        """Apply ``edit`` to the first block with ``entry_id`` and write the file back.

        Write errors on the matched file propagate.
        """
        for path, raw in self._scan():
            for block in decode_blocks(raw, path.stem, path):
                if block.entry.id != entry_id:
                    continue
                new_text = edit(block, normalize_newlines(raw))
                _write_text(path, new_text, detect_newline(raw))
                return True
        return False
