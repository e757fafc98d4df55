"""Tag vocabulary and note/tag associations.

The functions here run on a connection owned by the caller and never commit:
the caller decides the transaction boundary so a note and its tags always
change together.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable

from app.data.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

TAG_ORDER = "t.name COLLATE NOCASE, t.name"


def clean_tag_names(names: Iterable[str]) -> list[str]:
    """Strip names, drop empty ones and collapse duplicates, keeping first-seen order."""
    cleaned = (name.strip() for name in names)
    return list(dict.fromkeys(name for name in cleaned if name))


def ensure_tag(conn: sqlite3.Connection, name: str) -> int:
    name = name.strip()
    if not name:
        raise ValidationError("Tag name is empty")
    conn.execute("INSERT OR IGNORE INTO tags(name) VALUES (?)", (name,))
    row = conn.execute("SELECT id FROM tags WHERE name = ?", (name,)).fetchone()
    if row is None:
        raise StorageError(f"Tag '{name}' vanished right after it was stored")
    return int(row[0])


def set_note_tags(
    conn: sqlite3.Connection, note_id: int, tag_names: Iterable[str]
) -> list[str]:
    """Make ``tag_names`` the exact tag set of a note.

    Returns the cleaned names actually applied. An empty input clears the
    note's tags. Unused tags are left in the vocabulary.
    """
    names = clean_tag_names(tag_names)
    tag_ids = [ensure_tag(conn, name) for name in names]

    conn.execute("DELETE FROM note_tags WHERE note_id = ?", (note_id,))
    conn.executemany(
        "INSERT INTO note_tags(note_id, tag_id) VALUES (?, ?)",
        [(note_id, tag_id) for tag_id in tag_ids],
    )
    logger.debug(f"Note {note_id} tagged with {names}")
    return names


def tags_by_note(
    conn: sqlite3.Connection, note_ids: Iterable[int] | None = None
) -> dict[int, list[str]]:
    """Map note id to its tag names, alphabetical and case-insensitive.

    With ``note_ids`` of None, every tagged note is included. Notes without
    tags are simply absent from the result.
    """
    if note_ids is None:
        cur = conn.execute(
            f"""
            SELECT nt.note_id, t.name
            FROM note_tags nt
            JOIN tags t ON t.id = nt.tag_id
            ORDER BY nt.note_id, {TAG_ORDER}
            """
        )
    else:
        ids = list(note_ids)
        if not ids:
            return {}
        placeholders = ",".join(["?"] * len(ids))
        cur = conn.execute(
            f"""
            SELECT nt.note_id, t.name
            FROM note_tags nt
            JOIN tags t ON t.id = nt.tag_id
            WHERE nt.note_id IN ({placeholders})
            ORDER BY nt.note_id, {TAG_ORDER}
            """,
            ids,
        )

    result: dict[int, list[str]] = {}
    for note_id, name in cur.fetchall():
        result.setdefault(int(note_id), []).append(name)
    return result


def list_tag_names(conn: sqlite3.Connection) -> list[str]:
    cur = conn.execute(f"SELECT t.name FROM tags t ORDER BY {TAG_ORDER}")
    return [row[0] for row in cur.fetchall()]
