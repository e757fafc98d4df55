import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from app.data import tags as tag_store
from app.data.errors import (
    ConstraintViolationError,
    NotesError,
    NotFoundError,
    SchemaError,
    StorageError,
)
from app.data.folders import FolderTree
from app.data.schema import LEGACY_NOTES_COLUMNS, LEGACY_TAG_SEPARATOR, SCHEMA_SQL

logger = logging.getLogger(__name__)

_NOTE_COLUMNS = "id, title, content, is_markdown, folder_id, created_at, updated_at"


class Repository:
    """Single shared handle on the notes database.

    All access goes through one connection guarded by one lock, so at most one
    operation touches the file at a time. Multi-statement mutations run inside
    :meth:`transaction` and either commit completely or not at all.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._folders = FolderTree()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise SchemaError(f"Cannot open database {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and run the enclosed statements as one transaction."""
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise ConstraintViolationError(str(exc)) from exc
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageError(str(exc)) from exc
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.ProgrammingError as exc:
            logger.debug(f"Rollback skipped, connection unusable: {exc}")

    def _init_schema(self) -> None:
        try:
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self._has_legacy_notes_table():
                self._conn.execute("ALTER TABLE notes RENAME TO notes_legacy")
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
            # Also picks up a legacy table left behind by an interrupted upgrade.
            legacy = self._table_exists("notes_legacy")
        except sqlite3.Error as exc:
            raise SchemaError(f"Cannot provision schema in {self._db_path}: {exc}") from exc
        if legacy:
            self._migrate_legacy_tags()
        logger.info(f"Notes database ready at {self._db_path}")

    def _has_legacy_notes_table(self) -> bool:
        cur = self._conn.execute("PRAGMA table_info(notes)")
        columns = {row["name"] for row in cur.fetchall()}
        return LEGACY_NOTES_COLUMNS <= columns

    def _table_exists(self, name: str) -> bool:
        cur = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
        )
        return cur.fetchone() is not None

    def _migrate_legacy_tags(self) -> None:
        """Move notes from the comma-separated ``tags`` layout into the normalized tables."""
        logger.info("Legacy notes table found, normalizing comma-separated tags")
        try:
            with self.transaction() as conn:
                rows = conn.execute(
                    "SELECT id, title, content, markdown, tags FROM notes_legacy"
                ).fetchall()
                for row in rows:
                    conn.execute(
                        """
                        INSERT INTO notes(id, title, content, is_markdown)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            row["id"],
                            row["title"],
                            row["content"],
                            int(bool(row["markdown"])),
                        ),
                    )
                    names = (row["tags"] or "").split(LEGACY_TAG_SEPARATOR)
                    tag_store.set_note_tags(conn, int(row["id"]), names)
                conn.execute("DROP TABLE notes_legacy")
        except NotesError as exc:
            raise SchemaError(f"Legacy notes could not be migrated: {exc.message}") from exc
        logger.info(f"Migrated {len(rows)} legacy note(s)")

    # -- Notes --

    def list_notes(self, folder_id: int | None = None) -> list[dict]:
        """Every note with its tag names; only notes directly in ``folder_id`` when given."""
        with self.transaction() as conn:
            if folder_id is None:
                cur = conn.execute(
                    f"SELECT {_NOTE_COLUMNS} FROM notes ORDER BY updated_at DESC, id DESC"
                )
            else:
                cur = conn.execute(
                    f"""
                    SELECT {_NOTE_COLUMNS} FROM notes
                    WHERE folder_id = ?
                    ORDER BY updated_at DESC, id DESC
                    """,
                    (folder_id,),
                )
            rows = cur.fetchall()
            note_ids = None if folder_id is None else [row["id"] for row in rows]
            tags = tag_store.tags_by_note(conn, note_ids)
        return [_note_dict(row, tags.get(row["id"], [])) for row in rows]

    def get_note(self, note_id: int) -> dict | None:
        with self.transaction() as conn:
            row = conn.execute(
                f"SELECT {_NOTE_COLUMNS} FROM notes WHERE id = ?", (note_id,)
            ).fetchone()
            if row is None:
                return None
            tags = tag_store.tags_by_note(conn, [note_id])
        return _note_dict(row, tags.get(note_id, []))

    def create_note(
        self,
        title: str,
        content: str,
        is_markdown: bool = True,
        folder_id: int | None = None,
        tags: Iterable[str] = (),
    ) -> int:
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO notes(title, content, is_markdown, folder_id) VALUES (?, ?, ?, ?)",
                (title, content, int(is_markdown), folder_id),
            )
            assert cur.lastrowid is not None
            note_id = int(cur.lastrowid)
            tag_store.set_note_tags(conn, note_id, tags)
        logger.debug(f"Created note {note_id}")
        return note_id

    def update_note(
        self,
        note_id: int,
        title: str,
        content: str,
        is_markdown: bool = True,
        folder_id: int | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        with self.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE notes
                SET title = ?, content = ?, is_markdown = ?, folder_id = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (title, content, int(is_markdown), folder_id, note_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError("note", note_id)
            tag_store.set_note_tags(conn, note_id, tags)
        logger.debug(f"Updated note {note_id}")

    def delete_note(self, note_id: int) -> bool:
        """Delete a note; its tag links go with it. Returns False if it did not exist."""
        with self.transaction() as conn:
            cur = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
        return cur.rowcount > 0

    def search_notes(self, tag_fragment: str) -> list[dict]:
        """Notes with at least one tag containing ``tag_fragment``.

        Matching is case-insensitive for ASCII letters. Wildcard characters in
        the fragment match literally. Each note is returned once, with all of
        its tags.
        """
        pattern = f"%{_escape_like(tag_fragment)}%"
        with self.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT {_NOTE_COLUMNS} FROM notes n
                WHERE EXISTS (
                    SELECT 1
                    FROM note_tags nt
                    JOIN tags t ON t.id = nt.tag_id
                    WHERE nt.note_id = n.id AND t.name LIKE ? ESCAPE '\\'
                )
                ORDER BY n.updated_at DESC, n.id DESC
                """,
                (pattern,),
            ).fetchall()
            tags = tag_store.tags_by_note(conn, [row["id"] for row in rows])
        logger.debug(f"Tag search '{tag_fragment}' matched {len(rows)} note(s)")
        return [_note_dict(row, tags.get(row["id"], [])) for row in rows]

    # -- Tags --

    def list_tags(self) -> list[str]:
        with self.transaction() as conn:
            return tag_store.list_tag_names(conn)

    def get_note_tags(self, note_id: int) -> list[str]:
        with self.transaction() as conn:
            return tag_store.tags_by_note(conn, [note_id]).get(note_id, [])

    def set_note_tags(self, note_id: int, tag_names: Iterable[str]) -> None:
        with self.transaction() as conn:
            row = conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone()
            if row is None:
                raise NotFoundError("note", note_id)
            tag_store.set_note_tags(conn, note_id, tag_names)

    # -- Folders --

    def list_folders(self) -> list[dict]:
        with self.transaction() as conn:
            return self._folders.list(conn)

    def get_folder(self, folder_id: int) -> dict | None:
        with self.transaction() as conn:
            return self._folders.get(conn, folder_id)

    def create_folder(self, name: str, parent_id: int | None = None) -> int:
        with self.transaction() as conn:
            folder_id = self._folders.create(conn, name, parent_id)
        logger.debug(f"Created folder {folder_id} under {parent_id}")
        return folder_id

    def rename_folder(self, folder_id: int, name: str) -> None:
        with self.transaction() as conn:
            self._folders.rename(conn, folder_id, name)

    def move_folder(self, folder_id: int, parent_id: int | None) -> None:
        with self.transaction() as conn:
            self._folders.move(conn, folder_id, parent_id)

    def update_folder(
        self,
        folder_id: int,
        name: str | None = None,
        parent_id: int | None = None,
        move: bool = False,
    ) -> None:
        """Rename and/or re-parent a folder in one transaction.

        ``parent_id`` is only applied when ``move`` is set, so None can mean
        "move to the top level".
        """
        with self.transaction() as conn:
            if name is not None:
                self._folders.rename(conn, folder_id, name)
            if move:
                self._folders.move(conn, folder_id, parent_id)
            if not self._folders.exists(conn, folder_id):
                raise NotFoundError("folder", folder_id)

    def delete_folder(self, folder_id: int) -> int:
        """Delete a folder subtree and its notes. Returns the number of folders removed."""
        with self.transaction() as conn:
            return self._folders.delete(conn, folder_id)

    # -- Preferences --

    def get_preference(self, key: str) -> str | None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT value FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_preference(self, key: str, value: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO preferences(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )


def _note_dict(row: sqlite3.Row, tags: list[str]) -> dict:
    note = dict(row)
    note["is_markdown"] = bool(note["is_markdown"])
    note["tags"] = list(tags)
    return note


def _escape_like(fragment: str) -> str:
    return fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
