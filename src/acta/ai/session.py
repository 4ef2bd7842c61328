"""AI session manager — multi-turn conversations over a one-shot AI CLI.

Each turn spawns the CLI once. Conversation continuity comes from either a
resume token (thread id reported by the structured flavor) or, failing that,
by re-sending the system instruction and a window of recent history.

Results are never pushed: the caller polls ``read_output`` and gets whatever
has been queued since the previous poll.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from acta.ai.base import (
    CliFlavor,
    ReadResult,
    SessionBusy,
    SessionEnded,
    SessionNotFound,
    Turn,
    TurnState,
)
from acta.ai.protocol import EventScanner, parse_event
from acta.ai.runner import ProcessRunner, RunResult, StdoutCallback

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_TURNS = 8

# (executable, args, cwd=..., on_stdout=...) -> runner with async run(payload) + terminate()
RunnerFactory = Callable[..., ProcessRunner]


@dataclass
class Invocation:
    """Arguments for one CLI run plus where its answer will be found."""

    args: list[str]
    scratch_file: Path | None = None


@dataclass
class Session:
    id: str
    cli_path: str
    flavor: CliFlavor
    needs_bootstrap: bool = True
    system_instruction: str = ""
    resume_token: str | None = None
    history: list[Turn] = field(default_factory=list)
    output_queue: list[str] = field(default_factory=list)
    state: TurnState = TurnState.IDLE
    alive: bool = True
    last_exit_code: int | None = None
    last_error: str | None = None
    runner: ProcessRunner | None = field(default=None, repr=False)
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def busy(self) -> bool:
        return self.state is not TurnState.IDLE


def build_prompt(
    text: str,
    *,
    system_instruction: str = "",
    history: Sequence[Turn] = (),
    history_turns: int = DEFAULT_HISTORY_TURNS,
) -> str:
    """Full payload for a turn without server-side memory."""
    parts: list[str] = []
    if system_instruction.strip():
        parts.append(f"<instructions>\n{system_instruction.strip()}\n</instructions>")
    recent = list(history)[-history_turns:] if history_turns > 0 else []
    if recent:
        lines = []
        for turn in recent:
            lines.append(f"User: {turn.user}")
            lines.append(f"Assistant: {turn.assistant}")
        parts.append("<history>\n" + "\n\n".join(lines) + "\n</history>")
    parts.append(text)
    return "\n\n".join(parts)


def build_invocation(
    flavor: CliFlavor,
    *,
    resume_token: str | None = None,
    scratch_file: Path | None = None,
) -> Invocation:
    if flavor is CliFlavor.PRINT:
        return Invocation(args=["-p"])

    if scratch_file is None:
        raise ValueError("Structured invocation needs a scratch file")
    args = [
        "exec",
        "--json",
        "--skip-git-repo-check",
        "--output-last-message",
        str(scratch_file),
    ]
    if resume_token:
        args.extend(["resume", resume_token])
    args.append("-")
    return Invocation(args=args, scratch_file=scratch_file)


def _make_scratch_file() -> Path:
    fd, name = tempfile.mkstemp(prefix="acta-ai-", suffix=".txt")
    os.close(fd)
    return Path(name)


def _read_answer(invocation: Invocation, result: RunResult) -> str:
    """Answer text, then discard the scratch file."""
    if invocation.scratch_file is None:
        return result.stdout.strip()
    try:
        return invocation.scratch_file.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return ""
    finally:
        invocation.scratch_file.unlink(missing_ok=True)


def _diagnostic(result: RunResult, flavor: CliFlavor = CliFlavor.PRINT) -> str:
    """Best available explanation of a failed turn.

    Structured stdout is an event stream; only lines that are not JSON
    events count as diagnostic text there.
    """
    stdout = result.stdout
    if flavor is CliFlavor.STRUCTURED:
        stdout = "\n".join(
            line for line in stdout.splitlines() if line.strip() and parse_event(line) is None
        )
    return (
        result.stderr.strip()
        or stdout.strip()
        or result.error
        or f"[AI CLI exited with code {result.exit_code}]"
    )


class SessionManager:
    """Registry of AI sessions and their turn state machines."""

    def __init__(
        self,
        *,
        history_turns: int = DEFAULT_HISTORY_TURNS,
        cwd: str | None = None,
        runner_factory: RunnerFactory = ProcessRunner,
    ) -> None:
        self.history_turns = history_turns
        self.cwd = cwd
        self._runner_factory = runner_factory
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def _get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # ── Public API ────────────────────────────────────────────

    async def start(self, cli_path: str, flavor: CliFlavor | None = None) -> str:
        """Register a session. Nothing is spawned until the first real turn."""
        cli_path = (cli_path or "").strip()
        if not cli_path:
            raise ValueError("AI CLI path is empty")

        session = Session(
            id=uuid.uuid4().hex,
            cli_path=cli_path,
            flavor=flavor or CliFlavor.detect(cli_path),
        )
        async with self._lock:
            self._sessions[session.id] = session
        logger.info(
            "AI session %s started (cli=%s, flavor=%s)",
            session.id,
            cli_path,
            session.flavor.value,
        )
        return session.id

    async def send(self, session_id: str, text: str) -> bool:
        """Submit input. Returns True if a turn was started.

        The first call after ``start`` only records the system instruction
        and returns False.
        """
        async with self._lock:
            session = self._get(session_id)
            if not session.alive:
                raise SessionEnded(session_id)
            if session.busy:
                raise SessionBusy(session_id)

            if session.needs_bootstrap:
                session.system_instruction = text
                session.needs_bootstrap = False
                logger.debug("AI session %s: system instruction set", session_id)
                return False

            session.state = TurnState.SPAWNING
            session.task = asyncio.create_task(self._run_turn(session, text))
            return True

    async def read_output(self, session_id: str) -> ReadResult:
        """Drain queued output and report session flags."""
        async with self._lock:
            session = self._get(session_id)
            chunk = "\n\n".join(session.output_queue)
            session.output_queue.clear()
            return ReadResult(
                chunk=chunk,
                alive=session.alive,
                busy=session.busy,
                exit_code=session.last_exit_code,
                error=session.last_error,
            )

    async def stop(self, session_id: str) -> bool:
        """End a session; a running CLI gets SIGTERM (no forced kill).

        A turn that has not spawned yet never will. The turn task is left to
        wind down on its own and its output is discarded.
        """
        async with self._lock:
            session = self._get(session_id)
            session.alive = False
            session.state = TurnState.IDLE
            if session.runner is not None:
                session.runner.terminate()
            del self._sessions[session_id]
        logger.info("AI session %s stopped", session_id)
        return True

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Terminate every running CLI and forget all sessions.

        Pending turn tasks get ``timeout`` seconds to finish after SIGTERM and
        are cancelled after that.
        """
        async with self._lock:
            tasks = []
            for session in self._sessions.values():
                session.alive = False
                session.state = TurnState.IDLE
                if session.runner is not None:
                    session.runner.terminate()
                if session.task is not None and not session.task.done():
                    tasks.append(session.task)
            count = len(self._sessions)
            self._sessions.clear()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("Cancelled %d AI turn(s) still running", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
        if count:
            logger.info("Shut down %d AI session(s)", count)

    # ── Turn state machine ────────────────────────────────────

    async def _run_turn(self, session: Session, text: str) -> None:
        """SPAWNING → RUNNING → IDLE, recording success or soft failure."""
        scanner = EventScanner()
        async with self._lock:
            if not session.alive:
                logger.debug("AI session %s: stopped before spawn", session.id)
                return
            resume_token = session.resume_token if session.flavor.supports_resume else None
            try:
                scratch = (
                    _make_scratch_file() if session.flavor is CliFlavor.STRUCTURED else None
                )
            except OSError as e:
                logger.error("AI session %s: cannot create scratch file: %s", session.id, e)
                scratch_error = RunResult(exit_code=-1, error=str(e))
            else:
                scratch_error = None
                invocation = build_invocation(
                    session.flavor, resume_token=resume_token, scratch_file=scratch
                )
                if resume_token:
                    payload = text
                else:
                    payload = build_prompt(
                        text,
                        system_instruction=session.system_instruction,
                        history=session.history,
                        history_turns=self.history_turns,
                    )
                on_stdout: StdoutCallback | None = (
                    scanner.feed if session.flavor is CliFlavor.STRUCTURED else None
                )
                runner = self._runner_factory(
                    session.cli_path, invocation.args, cwd=self.cwd, on_stdout=on_stdout
                )
                # stop() terminates whatever runner it finds here
                session.runner = runner
                session.state = TurnState.RUNNING
        if scratch_error is not None:
            await self._finish_turn(session, text, scratch_error, "", None)
            return
        logger.debug(
            "AI session %s: turn spawned (resume=%s)", session.id, bool(resume_token)
        )

        try:
            result = await runner.run(payload)
        except asyncio.CancelledError:
            runner.terminate()
            if invocation.scratch_file is not None:
                invocation.scratch_file.unlink(missing_ok=True)
            raise
        except Exception as e:
            logger.exception("AI session %s: runner failed", session.id)
            result = RunResult(exit_code=-1, error=str(e) or type(e).__name__)
        scanner.flush()
        answer = _read_answer(invocation, result)
        await self._finish_turn(session, text, result, answer, scanner.thread_id)

    async def _finish_turn(
        self,
        session: Session,
        text: str,
        result: RunResult,
        answer: str,
        thread_id: str | None,
    ) -> None:
        async with self._lock:
            session.runner = None
            session.state = TurnState.IDLE
            session.last_exit_code = result.exit_code
            session.last_error = result.error
            if not session.alive:
                logger.debug("AI session %s: discarding output of stopped session", session.id)
                return

            if result.exit_code == 0 and answer:
                session.history.append(Turn(user=text, assistant=answer))
                session.output_queue.append(answer)
                if thread_id:
                    session.resume_token = thread_id
                logger.info("AI session %s: turn completed", session.id)
            else:
                session.resume_token = None
                session.output_queue.append(_diagnostic(result, session.flavor))
                logger.warning(
                    "AI session %s: turn failed (exit=%d, answer=%s)",
                    session.id,
                    result.exit_code,
                    "empty" if not answer else "present",
                )
