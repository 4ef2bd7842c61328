"""Interactive AI chat REPL for the terminal."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from acta.ai.base import ReadResult, SessionError
from acta.ai.session import SessionManager

logger = logging.getLogger(__name__)


def build_bootstrap_instruction(data_dir: str | Path | None, instruction: str) -> str:
    """System instruction for a chat: the journal location, then the user text."""
    directory = str(data_dir or "").strip()
    instruction = (instruction or "").strip()
    data_block = f"<data>{directory}</data>" if directory else ""
    if data_block and instruction:
        return f"{data_block}\n\n{instruction}"
    return instruction or data_block


class ChatConsole:
    """Reads lines from stdin, runs each as an AI turn, polls for the answer."""

    def __init__(
        self,
        sessions: SessionManager,
        cli_path: str,
        *,
        instruction: str = "",
        data_dir: str | Path | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.sessions = sessions
        self.cli_path = cli_path
        self.instruction = instruction
        self.data_dir = data_dir
        self.poll_interval = poll_interval
        self._running = False

    async def start(self) -> None:
        session_id = await self.sessions.start(self.cli_path)
        # Bootstrap turn: configures the session, produces no reply
        await self.sessions.send(
            session_id, build_bootstrap_instruction(self.data_dir, self.instruction)
        )

        self._running = True
        loop = asyncio.get_event_loop()

        print(f"Acta AI chat via {self.cli_path} (type 'exit' or Ctrl+C to quit)")
        print("-" * 48)

        try:
            while self._running:
                try:
                    line = await loop.run_in_executor(None, self._read_input)
                except (EOFError, KeyboardInterrupt):
                    print("\nBye!")
                    break

                if line is None or line.strip().lower() in ("exit", "quit"):
                    print("Bye!")
                    break

                text = line.strip()
                if not text:
                    continue

                try:
                    await self.sessions.send(session_id, text)
                except SessionError as e:
                    print(f"\n[{e}]")
                    continue

                result = await self.wait_for_reply(session_id)
                self.reply(result)
                if not result.alive:
                    break
        finally:
            if session_id in self.sessions:
                await self.sessions.stop(session_id)

    async def wait_for_reply(self, session_id: str) -> ReadResult:
        """Poll until the turn is over, accumulating drained chunks."""
        chunks: list[str] = []
        while True:
            result = await self.sessions.read_output(session_id)
            if result.chunk:
                chunks.append(result.chunk)
            if not result.busy:
                result.chunk = "\n\n".join(chunks)
                return result
            await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        self._running = False

    def _read_input(self) -> str | None:
        try:
            sys.stdout.write("\nYou: ")
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    def reply(self, result: ReadResult) -> None:
        print(f"\nAI: {result.chunk}")
        if result.error:
            print(f"  [error: {result.error}]", file=sys.stderr)
        elif result.exit_code not in (None, 0):
            print(f"  [exit code: {result.exit_code}]", file=sys.stderr)
