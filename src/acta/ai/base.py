"""AI session shared types and error taxonomy."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class SessionError(Exception):
    """Base for session-level failures reported to the caller."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"{self.describe}: {session_id}")
        self.session_id = session_id

    describe = "Session error"


class SessionNotFound(SessionError):
    describe = "Unknown AI session"


class SessionEnded(SessionError):
    describe = "AI session has ended"


class SessionBusy(SessionError):
    describe = "AI session is still running a turn"


class CliFlavor(str, enum.Enum):
    """Invocation convention of the external AI CLI.

    PRINT: ``claude -p`` style — prompt on stdin, answer on stdout, no thread state.
    STRUCTURED: ``codex exec --json`` style — JSONL event stream on stdout,
    answer written to a scratch file, resumable by thread id.
    """

    PRINT = "print"
    STRUCTURED = "structured"

    @property
    def supports_resume(self) -> bool:
        return self is CliFlavor.STRUCTURED

    @classmethod
    def detect(cls, cli_path: str) -> CliFlavor:
        """Guess the flavor from the executable name. Unknown → STRUCTURED."""
        name = Path(cli_path.strip()).name.lower()
        if "claude" in name:
            return cls.PRINT
        return cls.STRUCTURED


class TurnState(str, enum.Enum):
    IDLE = "idle"
    SPAWNING = "spawning"
    RUNNING = "running"


@dataclass(frozen=True)
class Turn:
    """One completed exchange kept in session history."""

    user: str
    assistant: str


@dataclass
class ReadResult:
    """Snapshot returned by a poll: drained output plus session flags."""

    chunk: str
    alive: bool
    busy: bool
    exit_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "chunk": self.chunk,
            "alive": self.alive,
            "busy": self.busy,
            "exitCode": self.exit_code,
            "error": self.error,
        }
