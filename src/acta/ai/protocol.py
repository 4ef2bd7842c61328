"""JSONL event stream of the structured CLI flavor — parse only (no I/O).

``codex exec --json`` prints one JSON object per line. The only event the
session manager acts on is ``thread.started``, which carries the id used to
resume the conversation on the next turn.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ThreadStarted:
    """type=thread.started — first event of a structured run."""

    thread_id: str


ParsedEvent = ThreadStarted | dict[str, Any]


def parse_event(line: str) -> ParsedEvent | None:
    """Parse one stdout line. Returns None for blank or non-JSON lines."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    if data.get("type") == "thread.started":
        thread_id = data.get("thread_id") or data.get("session_id") or ""
        if thread_id:
            return ThreadStarted(thread_id=str(thread_id))
    return data


class EventScanner:
    """Incremental line splitter fed with raw stdout chunks.

    Remembers the last thread id seen; partial lines are held until their
    newline arrives (or until ``flush``).
    """

    def __init__(self) -> None:
        self._pending = ""
        self.thread_id: str | None = None

    def feed(self, chunk: str) -> None:
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._handle(line)

    def flush(self) -> None:
        if self._pending:
            self._handle(self._pending)
            self._pending = ""

    def _handle(self, line: str) -> None:
        event = parse_event(line)
        if isinstance(event, ThreadStarted):
            logger.debug("Thread started: %s", event.thread_id)
            self.thread_id = event.thread_id
