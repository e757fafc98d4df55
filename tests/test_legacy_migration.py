"""Opening a database written by the comma-separated tags release."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from app.data.repository import Repository

LEGACY_SCHEMA = """
CREATE TABLE notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    markdown BOOLEAN NOT NULL,
    tags TEXT
);
"""


def _write_legacy_db(path: Path, rows: list[tuple]) -> None:
    conn = sqlite3.connect(path)
    conn.executescript(LEGACY_SCHEMA)
    conn.executemany(
        "INSERT INTO notes(id, title, content, markdown, tags) VALUES (?, ?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    conn.close()


def test_legacy_tags_are_normalized(tmp_path: Path) -> None:
    db_path = tmp_path / "notes.db"
    _write_legacy_db(
        db_path,
        [
            (3, "Rust", "ownership", True, "rustlang, systems"),
            (7, "Plain", "no tags", False, ""),
            (9, "Dupes", "x", True, "go,go, ,systems"),
            (11, "Null tags", "y", False, None),
        ],
    )

    repo = Repository(str(db_path))

    notes = {n["id"]: n for n in repo.list_notes()}
    assert set(notes) == {3, 7, 9, 11}
    assert notes[3]["tags"] == ["rustlang", "systems"]
    assert notes[3]["is_markdown"] is True
    assert notes[3]["folder_id"] is None
    assert notes[7]["tags"] == []
    assert notes[7]["is_markdown"] is False
    assert notes[9]["tags"] == ["go", "systems"]
    assert notes[11]["tags"] == []
    assert repo.list_tags() == ["go", "rustlang", "systems"]
    assert [n["id"] for n in repo.search_notes("rust")] == [3]
    repo.close()


def test_legacy_table_is_dropped_and_ids_continue(tmp_path: Path) -> None:
    db_path = tmp_path / "notes.db"
    _write_legacy_db(db_path, [(5, "Old", "", True, "a")])

    repo = Repository(str(db_path))
    new_id = repo.create_note("New", "")
    repo.close()

    assert new_id > 5
    conn = sqlite3.connect(db_path)
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
    conn.close()
    assert "notes_legacy" not in tables


def test_reopening_normalized_db_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "notes.db"
    repo = Repository(str(db_path))
    note_id = repo.create_note("Kept", "", tags=["a"])
    repo.close()

    repo = Repository(str(db_path))
    repo.close()
    repo = Repository(str(db_path))

    assert [(n["id"], n["tags"]) for n in repo.list_notes()] == [(note_id, ["a"])]
    repo.close()
