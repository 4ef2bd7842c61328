"""Tests for the per-day file entry store."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from acta.entries.store import EntryStore, ValidationError


class FakeClock:
    """Deterministic clock; advances one minute per call."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 2, 18, 9, 5))


@pytest.fixture
def store(tmp_path: Path, clock: FakeClock) -> EntryStore:
    return EntryStore(tmp_path / "journal", clock=clock)


def read_raw(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


class TestList:
    def test_creates_missing_directory(self, store: EntryStore):
        assert store.list() == []
        assert store.data_dir.is_dir()

    def test_ignores_non_day_files(self, store: EntryStore):
        store.add("real entry")
        (store.data_dir / "notes.md").write_text(
            "<!-- acta:comment\nid: stray\n-->\nx\n<!-- /acta:comment -->\n", encoding="utf-8"
        )
        (store.data_dir / "2026-2-1.md").write_text("", encoding="utf-8")
        assert [e.body for e in store.list()] == ["real entry"]

    def test_skips_unreadable_file(self, store: EntryStore):
        store.add("good")
        # A directory with a day-file name cannot be read as a file
        (store.data_dir / "2026-01-01.md").mkdir()
        assert [e.body for e in store.list()] == ["good"]

    def test_descending_across_day_files(self, store: EntryStore, clock: FakeClock):
        first = store.add("day one, morning")
        second = store.add("day one, later")
        clock.now = datetime(2026, 2, 19, 8, 0)
        third = store.add("day two")

        listed = store.list()
        assert [e.id for e in listed] == [third.id, second.id, first.id]
        ms = [e.created_at_ms for e in listed]
        assert ms == sorted(ms, reverse=True)
        assert len(set(ms)) == 3

    def test_stable_on_equal_sort_keys(self, store: EntryStore):
        store.ensure_data_dir()
        text = "# 2026-02-18\n\n" + "".join(
            f"<!-- acta:comment\nid: {i}\ncreated_ms: 100\n-->\nb{i}\n<!-- /acta:comment -->\n\n"
            for i in ("a", "b", "c")
        )
        (store.data_dir / "2026-02-18.md").write_text(text, encoding="utf-8")
        assert [e.id for e in store.list()] == ["a", "b", "c"]


class TestAdd:
    def test_round_trip(self, store: EntryStore):
        entry = store.add("Hello journal  \n\n", [" foo ", "#foo", "foo", "bar"])
        [listed] = store.list()
        assert listed.id == entry.id
        assert listed.body == "Hello journal"
        assert listed.tags == ["foo", "bar"]
        assert listed.source_file == store.data_dir / "2026-02-18.md"

    def test_first_of_day_is_date_only(self, store: EntryStore):
        first = store.add("first")
        second = store.add("second")
        assert first.created == "2026-02-18"
        assert second.created == "2026-02-18 09:06"
        assert first.date == second.date == "2026-02-18"

    def test_new_file_has_heading(self, store: EntryStore):
        entry = store.add("first")
        assert read_raw(entry.source_file).startswith("# 2026-02-18\n\n<!-- acta:comment\n")

    def test_appends_without_truncating(self, store: EntryStore):
        store.ensure_data_dir()
        path = store.data_dir / "2026-02-18.md"
        path.write_text("# My own heading\n\nhand-written notes\n", encoding="utf-8")
        entry = store.add("appended")
        text = read_raw(path)
        assert text.startswith("# My own heading\n\nhand-written notes\n")
        assert entry.created == "2026-02-18 09:05"

    def test_appends_in_crlf_style(self, store: EntryStore):
        store.ensure_data_dir()
        path = store.data_dir / "2026-02-18.md"
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write("# 2026-02-18\r\n\r\n")
        store.add("windows\nbody")
        text = read_raw(path)
        assert "\n" not in text.replace("\r\n", "")
        assert [e.body for e in store.list()] == ["windows\nbody"]

    def test_separator_inside_tag_is_split(self, store: EntryStore):
        entry = store.add("body", ["a,b", "c、d"])
        [listed] = store.list()
        assert entry.tags == listed.tags == ["a", "b", "c", "d"]

    def test_body_containing_end_marker(self, store: EntryStore):
        body = "quoting the format:\n<!-- /acta:comment -->\nstill mine"
        first = store.add(body, ["x-->"])
        second = store.add("second")
        listed = {e.id: e for e in store.list()}
        assert listed[first.id].body == body
        assert listed[first.id].tags == first.tags == ["x->"]
        assert listed[second.id].body == "second"

    def test_created_at_ms_from_clock(self, store: EntryStore):
        entry = store.add("x")
        assert entry.created_at_ms == int(datetime(2026, 2, 18, 9, 5).timestamp() * 1000)

    def test_unique_ids(self, store: EntryStore):
        ids = {store.add(f"entry {i}").id for i in range(5)}
        assert len(ids) == 5

    @pytest.mark.parametrize("body", ["", "   ", "\n\t\n"])
    def test_rejects_empty_body(self, store: EntryStore, body):
        with pytest.raises(ValidationError):
            store.add(body, ["tag"])
        assert not (store.data_dir / "2026-02-18.md").exists()


class TestUpdate:
    def test_preserves_identity(self, store: EntryStore):
        entry = store.add("original", ["old"])
        store.add("neighbour")
        assert store.update(entry.id, "rewritten\nbody", ["#new", "new", "other"])

        [updated] = [e for e in store.list() if e.id == entry.id]
        assert updated.created == entry.created
        assert updated.created_at_ms == entry.created_at_ms
        assert updated.body == "rewritten\nbody"
        assert updated.tags == ["new", "other"]

    def test_leaves_other_blocks_untouched(self, store: EntryStore):
        a = store.add("a")
        b = store.add("b")
        c = store.add("c")
        path = a.source_file
        before = read_raw(path)

        store.update(b.id, "B!", [])
        after = read_raw(path)
        b_start = before.index(f"id: {b.id}") - len("<!-- acta:comment\n")
        c_start = before.index(f"id: {c.id}") - len("<!-- acta:comment\n")
        assert after[:b_start] == before[:b_start]
        assert after.endswith(before[c_start:])
        assert "B!\n<!-- /acta:comment -->" in after[b_start:]

    def test_not_found(self, store: EntryStore):
        store.add("something")
        assert store.update("no-such-id", "body", []) is False

    def test_rejects_empty_body(self, store: EntryStore):
        entry = store.add("keep me")
        with pytest.raises(ValidationError):
            store.update(entry.id, "   ", [])
        assert store.list()[0].body == "keep me"

    def test_preserves_crlf(self, store: EntryStore):
        store.ensure_data_dir()
        path = store.data_dir / "2026-02-18.md"
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(
                "# 2026-02-18\r\n\r\n<!-- acta:comment\r\nid: w1\r\ncreated: 2026-02-18\r\n"
                "created_ms: 5\r\ntags: a\r\n-->\r\nold\r\n<!-- /acta:comment -->\r\n\r\n"
            )
        assert store.update("w1", "new", ["b"])
        text = read_raw(path)
        assert "\n" not in text.replace("\r\n", "")
        assert "new\r\n<!-- /acta:comment -->" in text
        [entry] = store.list()
        assert (entry.created_at_ms, entry.tags) == (5, ["b"])

    def test_write_failure_propagates(self, store: EntryStore, monkeypatch):
        entry = store.add("x")

        def boom(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr("acta.entries.store._write_text", boom)
        with pytest.raises(PermissionError):
            store.update(entry.id, "y", [])


class TestDelete:
    def test_delete_is_exact(self, store: EntryStore):
        a = store.add("a", ["t"])
        b = store.add("b")
        c = store.add("c")
        before = {e.id: e for e in store.list()}

        assert store.delete(b.id) is True
        after = {e.id: e for e in store.list()}
        assert set(after) == {a.id, c.id}
        assert after[a.id] == before[a.id]
        assert after[c.id] == before[c.id]

    def test_removes_block_and_separator(self, store: EntryStore):
        a = store.add("a")
        b = store.add("b")
        path = a.source_file
        before = read_raw(path)
        store.delete(b.id)
        # Deleting the last block leaves the file exactly as it was before b
        assert read_raw(path) == before[: before.index(f"id: {b.id}") - len("<!-- acta:comment\n")]

    def test_not_found(self, store: EntryStore):
        assert store.delete("missing") is False

    def test_only_first_file_with_id(self, store: EntryStore):
        store.ensure_data_dir()
        block = "<!-- acta:comment\nid: dup\n-->\nx\n<!-- /acta:comment -->\n\n"
        (store.data_dir / "2026-01-01.md").write_text(block, encoding="utf-8")
        (store.data_dir / "2026-01-02.md").write_text(block, encoding="utf-8")
        assert store.delete("dup")
        assert [e.date for e in store.list()] == ["2026-01-02"]

    def test_fallback_id_can_be_deleted(self, store: EntryStore):
        store.ensure_data_dir()
        path = store.data_dir / "2026-01-01.md"
        path.write_text("# x\n\n<!-- acta:comment\n-->\nlegacy\n<!-- /acta:comment -->\n\n", encoding="utf-8")
        [entry] = store.list()
        assert entry.id == "2026-01-01.md:5"
        assert store.delete(entry.id)
        assert read_raw(path) == "# x\n\n"
