"""Tests for the command-line entry point."""

import pytest
from pathlib import Path

from acta.__main__ import main


@pytest.fixture(autouse=True)
def env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ACTA_DATA_DIR", str(tmp_path / "journal"))
    monkeypatch.setenv("ACTA_SETTINGS_FILE", str(tmp_path / "settings.json"))
    monkeypatch.delenv("ACTA_AI_CLI", raising=False)


def added_id(out: str) -> str:
    return out.split()[1]


class TestMain:
    def test_add_list_update_delete(self, capsys):
        assert main(["add", "first note", "-t", "#work", "-t", "home"]) == 0
        entry_id = added_id(capsys.readouterr().out)

        assert main(["list"]) == 0
        out = capsys.readouterr().out
        assert entry_id in out
        assert "first note" in out
        assert "[work, home]" in out

        assert main(["update", entry_id, "edited"]) == 0
        capsys.readouterr()
        assert main(["list", "--tag", "#work"]) == 0
        assert capsys.readouterr().out == ""
        assert main(["list"]) == 0
        assert "edited" in capsys.readouterr().out

        assert main(["delete", entry_id]) == 0
        capsys.readouterr()
        assert main(["list"]) == 0
        assert capsys.readouterr().out == ""

    def test_not_found(self, capsys):
        assert main(["delete", "missing"]) == 1
        assert "not found" in capsys.readouterr().err

    def test_empty_body(self, capsys):
        assert main(["add", "   "]) == 2
        assert "empty" in capsys.readouterr().err

    def test_chat_without_cli(self, capsys):
        assert main(["chat"]) == 1
        assert "No AI CLI configured" in capsys.readouterr().err
