"""Configuration loading from environment variables, acta.toml and the settings file."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_DATA_DIR = Path.home() / "Documents" / "Acta"
_DEFAULT_SETTINGS_FILE = Path.home() / ".acta" / "acta-settings.json"
_CONFIG_FILENAME = "acta.toml"


@dataclass
class Settings:
    """User-editable settings persisted as JSON (shared with the UI layer)."""

    data_dir: str = ""
    ai_cli_path: str = ""
    ai_instruction_markdown: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Settings:
        def text(key: str) -> str:
            value = data.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            data_dir=text("dataDir"),
            ai_cli_path=text("aiCliPath"),
            ai_instruction_markdown=text("aiInstructionMarkdown"),
        )

    def to_dict(self) -> dict:
        return {
            "dataDir": self.data_dir,
            "aiCliPath": self.ai_cli_path,
            "aiInstructionMarkdown": self.ai_instruction_markdown,
        }


def load_settings(path: Path) -> Settings:
    """Read the settings file. Missing or malformed → defaults."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Settings()
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return Settings()
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: not a JSON object", path)
        return Settings()
    return Settings.from_dict(data)


def save_settings(path: Path, settings: Settings) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


@dataclass
class AIConfig:
    """AI session configuration."""

    cli_path: str = ""
    instruction: str = ""
    history_turns: int = 8
    poll_interval: float = 0.5
    cwd: str | None = None


@dataclass
class ActaConfig:
    """Top-level Acta configuration."""

    ai: AIConfig = field(default_factory=AIConfig)
    data_dir: Path = _DEFAULT_DATA_DIR
    settings_file: Path = _DEFAULT_SETTINGS_FILE
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> ActaConfig:
    """Load configuration from environment variables, acta.toml and the settings file.

    Priority: environment variables > settings file > acta.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.acta/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".acta" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    ai_data = file_data.get("ai", {})

    settings_file = Path(
        os.getenv("ACTA_SETTINGS_FILE", file_data.get("settings_file", str(_DEFAULT_SETTINGS_FILE)))
    ).expanduser()
    settings = load_settings(settings_file)

    data_dir = (
        os.getenv("ACTA_DATA_DIR")
        or settings.data_dir.strip()
        or file_data.get("data_dir")
        or str(_DEFAULT_DATA_DIR)
    )

    config = ActaConfig(
        ai=AIConfig(
            cli_path=os.getenv("ACTA_AI_CLI") or settings.ai_cli_path.strip() or ai_data.get("cli_path", ""),
            instruction=settings.ai_instruction_markdown or ai_data.get("instruction", ""),
            history_turns=int(os.getenv("ACTA_AI_HISTORY_TURNS", ai_data.get("history_turns", 8))),
            poll_interval=float(os.getenv("ACTA_AI_POLL_INTERVAL", ai_data.get("poll_interval", 0.5))),
            cwd=ai_data.get("cwd"),
        ),
        data_dir=Path(data_dir).expanduser(),
        settings_file=settings_file,
        log_level=os.getenv("ACTA_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
