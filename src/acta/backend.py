"""Acta backend — the RPC boundary a UI layer talks to.

Responsibilities:
1. Route channel calls (``acta:listEntries``, ``acta:aiSend``, ...) to handlers
2. Entry store access — list/add/update/delete in the configured data directory
3. AI sessions — start/send/read/stop over one SessionManager
4. Settings — read/write the JSON settings document, switch data directory

Results are JSON-shaped (camelCase dict keys). Validation and not-found are
returned as values; I/O and session errors propagate to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from acta.ai.session import SessionManager
from acta.config import ActaConfig, Settings, load_settings, save_settings
from acta.entries.store import EntryStore, ValidationError

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[Any]]


class Backend:
    """Core facade — one instance per host application."""

    def __init__(
        self,
        config: ActaConfig,
        *,
        sessions: SessionManager | None = None,
    ) -> None:
        self.config = config
        self.store = EntryStore(config.data_dir)
        self.sessions = sessions or SessionManager(
            history_turns=config.ai.history_turns,
            cwd=config.ai.cwd,
        )
        self._handlers: dict[str, Handler] = {
            "acta:getDataDir": self._get_data_dir,
            "acta:setDataDir": self._set_data_dir,
            "acta:getSettings": self._get_settings,
            "acta:saveSettings": self._save_settings,
            "acta:listEntries": self._list_entries,
            "acta:addEntry": self._add_entry,
            "acta:updateEntry": self._update_entry,
            "acta:deleteEntry": self._delete_entry,
            "acta:aiStart": self._ai_start,
            "acta:aiSend": self._ai_send,
            "acta:aiRead": self._ai_read,
            "acta:aiStop": self._ai_stop,
        }

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    async def call(self, channel: str, payload: dict | None = None) -> Any:
        """Dispatch one RPC call."""
        handler = self._handlers.get(channel)
        if handler is None:
            raise LookupError(
                f"No handler registered for '{channel}' (backend may be out of date)"
            )
        return await handler(payload or {})

    async def close(self) -> None:
        """Terminate any running AI CLI processes."""
        await self.sessions.shutdown()

    # ── Settings ──────────────────────────────────────────────

    def _settings(self) -> Settings:
        return load_settings(self.config.settings_file)

    async def _get_data_dir(self, payload: dict) -> str:
        return str(self.store.data_dir)

    async def _set_data_dir(self, payload: dict) -> str:
        new_dir = str(payload.get("dir") or "").strip()
        if not new_dir:
            raise ValueError("Data directory is empty")
        path = Path(new_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)

        settings = self._settings()
        settings.data_dir = str(path)
        save_settings(self.config.settings_file, settings)

        self.config.data_dir = path
        self.store.data_dir = path
        logger.info("Data directory set to %s", path)
        return str(path)

    async def _get_settings(self, payload: dict) -> dict:
        return self._settings().to_dict()

    async def _save_settings(self, payload: dict) -> dict:
        settings = Settings.from_dict(payload)
        save_settings(self.config.settings_file, settings)
        self.config.ai.cli_path = settings.ai_cli_path.strip()
        self.config.ai.instruction = settings.ai_instruction_markdown
        if settings.data_dir.strip():
            self.config.data_dir = Path(settings.data_dir.strip()).expanduser()
            self.store.data_dir = self.config.data_dir
        return settings.to_dict()

    # ── Entries ───────────────────────────────────────────────

    async def _list_entries(self, payload: dict) -> list[dict]:
        return [entry.to_dict() for entry in self.store.list()]

    async def _add_entry(self, payload: dict) -> dict:
        try:
            entry = self.store.add(payload.get("body") or "", _tags(payload))
        except ValidationError as e:
            return {"error": str(e)}
        return entry.to_dict()

    async def _update_entry(self, payload: dict) -> dict:
        try:
            updated = self.store.update(
                str(payload.get("id") or ""), payload.get("body") or "", _tags(payload)
            )
        except ValidationError as e:
            return {"updated": False, "error": str(e)}
        return {"updated": updated}

    async def _delete_entry(self, payload: dict) -> dict:
        return {"deleted": self.store.delete(str(payload.get("id") or ""))}

    # ── AI sessions ───────────────────────────────────────────

    async def _ai_start(self, payload: dict) -> dict:
        cli_path = str(payload.get("cliPath") or self.config.ai.cli_path)
        return {"sessionId": await self.sessions.start(cli_path)}

    async def _ai_send(self, payload: dict) -> dict:
        accepted = await self.sessions.send(
            str(payload.get("sessionId") or ""), str(payload.get("text") or "")
        )
        return {"accepted": accepted}

    async def _ai_read(self, payload: dict) -> dict:
        result = await self.sessions.read_output(str(payload.get("sessionId") or ""))
        return result.to_dict()

    async def _ai_stop(self, payload: dict) -> dict:
        return {"stopped": await self.sessions.stop(str(payload.get("sessionId") or ""))}


def _tags(payload: dict) -> list[str]:
    tags = payload.get("tags")
    return [str(t) for t in tags] if isinstance(tags, list) else []
