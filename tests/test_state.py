"""Tests for the staging state file."""

from __future__ import annotations

import json

from filestage.state import INTACT, MISSING, MODIFIED, STATE_FILENAME, StateFile


def test_record_and_reload(tmp_path):
    staged = tmp_path / "app" / "a.tgz"
    staged.parent.mkdir()
    staged.write_bytes(b"archive")

    StateFile(tmp_path).record(staged, "https://example.com/a.tgz")
    (entry,) = StateFile(tmp_path).entries()

    assert entry.key == "app/a.tgz"
    assert entry.source == "https://example.com/a.tgz"
    assert entry.size == 7
    assert not list(tmp_path.glob("*.tmp"))


def test_verify_reports_modified_and_missing(tmp_path):
    kept = tmp_path / "kept.bin"
    edited = tmp_path / "edited.bin"
    removed = tmp_path / "removed.bin"
    for path in (kept, edited, removed):
        path.write_bytes(b"one")
    state = StateFile(tmp_path)
    for path in (kept, edited, removed):
        state.record(path, f"s3://bucket/{path.name}")

    edited.write_bytes(b"two")
    removed.unlink()

    conditions = {entry.key: condition for entry, condition in StateFile(tmp_path).verify()}
    assert conditions == {"edited.bin": MODIFIED, "kept.bin": INTACT, "removed.bin": MISSING}


def test_paths_outside_root_use_absolute_key(tmp_path):
    outside = tmp_path / "elsewhere.bin"
    outside.write_bytes(b"x")
    state = StateFile(tmp_path / "root")

    entry = state.record(outside, "s3://bucket/elsewhere.bin")

    assert entry.key == str(outside)
    assert state.target_of(entry) == outside
    assert state.condition(entry) == INTACT


def test_corrupt_or_foreign_state_loads_empty(tmp_path):
    (tmp_path / STATE_FILENAME).write_text("{not json")
    assert StateFile(tmp_path).entries() == []

    (tmp_path / STATE_FILENAME).write_text(json.dumps({"schema_version": 99, "entries": {"a": {}}}))
    assert StateFile(tmp_path).entries() == []
