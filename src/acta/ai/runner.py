"""Generic subprocess runner with buffered, event-driven stdout/stderr capture."""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_READ_SIZE = 4096

# Called with each decoded stdout chunk as it arrives
StdoutCallback = Callable[[str], None]


class ProcessSpawnError(OSError):
    """The executable could not be started (missing, not executable, ...)."""


@dataclass
class RunResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None


class ProcessRunner:
    """Runs one subprocess: payload in on stdin, buffered output out."""

    def __init__(
        self,
        executable: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
        on_stdout: StdoutCallback | None = None,
    ) -> None:
        self.executable = executable
        self.args = list(args)
        self.cwd = cwd
        self.on_stdout = on_stdout
        self._process: asyncio.subprocess.Process | None = None
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._terminate_requested = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Spawn the process with all three pipes."""
        if self._process is not None:
            raise RuntimeError("Process already started")
        logger.debug("Spawning: %s %s", self.executable, " ".join(self.args[:6]))
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.executable,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise ProcessSpawnError(
                e.errno, f"Cannot start {self.executable}: {e.strerror or e}"
            ) from e
        if self._terminate_requested:
            # stop arrived while the spawn was in flight
            self.terminate()

    async def run(self, payload: str = "") -> RunResult:
        """Spawn, feed ``payload`` and collect output until exit.

        Spawn failures come back as a synthetic result with ``exit_code=-1``.
        A runner terminated before it ran never spawns.
        """
        if self._terminate_requested:
            return RunResult(exit_code=-1, error="Terminated before start")
        try:
            await self.start()
        except ProcessSpawnError as e:
            logger.error("%s", e.strerror)
            return RunResult(exit_code=-1, error=e.strerror)

        proc = self._process
        try:
            await asyncio.gather(
                self._feed(payload),
                self._pump(proc.stdout, self._stdout, self.on_stdout),
                self._pump(proc.stderr, self._stderr, None),
            )
            exit_code = await proc.wait()
        except asyncio.CancelledError:
            self.terminate()
            raise
        logger.debug("Process %d exited with %d", proc.pid, exit_code)
        return RunResult(
            exit_code=exit_code,
            stdout="".join(self._stdout),
            stderr="".join(self._stderr),
        )

    def terminate(self) -> bool:
        """Best-effort SIGTERM. Returns True if a signal was sent.

        Before the process exists the request is remembered: ``run`` will not
        spawn and an in-flight ``start`` terminates right after spawning.
        """
        self._terminate_requested = True
        if not self.is_running:
            return False
        logger.info("Terminating process (pid=%d)", self._process.pid)
        try:
            self._process.terminate()
        except ProcessLookupError:
            return False
        return True

    # ── Internal I/O helpers ──────────────────────────────────

    async def _feed(self, payload: str) -> None:
        stdin = self._process.stdin
        try:
            if payload:
                stdin.write(payload.encode("utf-8"))
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("Process closed stdin before the payload was written")
        finally:
            stdin.close()

    async def _pump(
        self,
        stream: asyncio.StreamReader,
        buffer: list[str],
        callback: StdoutCallback | None,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                buffer.append(text)
                if callback:
                    callback(text)
            if not data:
                break


async def run_process(
    executable: str,
    args: Sequence[str] = (),
    payload: str = "",
    *,
    cwd: str | None = None,
    on_stdout: StdoutCallback | None = None,
) -> RunResult:
    """One-shot convenience wrapper around ``ProcessRunner.run``."""
    runner = ProcessRunner(executable, args, cwd=cwd, on_stdout=on_stdout)
    return await runner.run(payload)
