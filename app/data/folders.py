"""Folder tree stored as parent pointers in the ``folders`` table.

The tree is never materialized: every walk is a series of lookups by id.
Deleting a folder removes its whole subtree together with the notes filed
anywhere inside it.
"""

from __future__ import annotations

import logging
import sqlite3

from app.data.errors import FolderCycleError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class FolderTree:
    """Folder operations on a caller-owned connection. Nothing here commits."""

    def list(self, conn: sqlite3.Connection) -> list[dict]:
        cur = conn.execute(
            "SELECT id, name, parent_id FROM folders ORDER BY name COLLATE NOCASE, id"
        )
        return [dict(row) for row in cur.fetchall()]

    def get(self, conn: sqlite3.Connection, folder_id: int) -> dict | None:
        cur = conn.execute(
            "SELECT id, name, parent_id FROM folders WHERE id = ?", (folder_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def exists(self, conn: sqlite3.Connection, folder_id: int) -> bool:
        cur = conn.execute("SELECT 1 FROM folders WHERE id = ?", (folder_id,))
        return cur.fetchone() is not None

    def create(
        self, conn: sqlite3.Connection, name: str, parent_id: int | None = None
    ) -> int:
        name = _clean_name(name)
        if parent_id is not None and not self.exists(conn, parent_id):
            raise NotFoundError("folder", parent_id)
        cur = conn.execute(
            "INSERT INTO folders(name, parent_id) VALUES (?, ?)", (name, parent_id)
        )
        assert cur.lastrowid is not None
        return int(cur.lastrowid)

    def rename(self, conn: sqlite3.Connection, folder_id: int, name: str) -> None:
        name = _clean_name(name)
        cur = conn.execute(
            "UPDATE folders SET name = ? WHERE id = ?", (name, folder_id)
        )
        if cur.rowcount == 0:
            raise NotFoundError("folder", folder_id)

    def move(
        self, conn: sqlite3.Connection, folder_id: int, parent_id: int | None
    ) -> None:
        """Re-parent a folder; ``parent_id`` of None moves it to the top level."""
        if not self.exists(conn, folder_id):
            raise NotFoundError("folder", folder_id)
        if parent_id is not None:
            if not self.exists(conn, parent_id):
                raise NotFoundError("folder", parent_id)
            if parent_id == folder_id or parent_id in self.descendant_ids(
                conn, folder_id
            ):
                raise FolderCycleError(folder_id, parent_id)
        conn.execute(
            "UPDATE folders SET parent_id = ? WHERE id = ?", (parent_id, folder_id)
        )

    def children_ids(self, conn: sqlite3.Connection, folder_id: int) -> list[int]:
        cur = conn.execute(
            "SELECT id FROM folders WHERE parent_id = ? ORDER BY id", (folder_id,)
        )
        return [int(row[0]) for row in cur.fetchall()]

    def descendant_ids(self, conn: sqlite3.Connection, folder_id: int) -> list[int]:
        """All folders below ``folder_id``, excluding the folder itself."""
        found: list[int] = []
        seen = {folder_id}
        pending = [folder_id]
        while pending:
            for child_id in self.children_ids(conn, pending.pop()):
                if child_id in seen:
                    continue
                seen.add(child_id)
                found.append(child_id)
                pending.append(child_id)
        return found

    def delete(self, conn: sqlite3.Connection, folder_id: int) -> int:
        """Delete a folder, every folder below it and all their notes.

        Returns the number of folder rows removed; 0 when the folder does not
        exist.
        """
        if not self.exists(conn, folder_id):
            logger.debug(f"Folder {folder_id} already gone, nothing to delete")
            return 0
        removed = self._delete_subtree(conn, folder_id)
        logger.info(f"Deleted folder {folder_id} and {removed - 1} subfolder(s)")
        return removed

    def _delete_subtree(self, conn: sqlite3.Connection, folder_id: int) -> int:
        # Post-order with an explicit stack: a folder is revisited, and only
        # then deleted, after everything pushed above it has been removed.
        visited = {folder_id}
        stack = [(folder_id, False)]
        removed = 0
        while stack:
            current, children_done = stack.pop()
            if not children_done:
                stack.append((current, True))
                for child_id in self.children_ids(conn, current):
                    if child_id in visited:
                        logger.warning(
                            f"Folder {child_id} is already being deleted; "
                            f"the stored tree has a cycle through folder {current}"
                        )
                        continue
                    visited.add(child_id)
                    stack.append((child_id, False))
                continue

            cur = conn.execute("DELETE FROM notes WHERE folder_id = ?", (current,))
            if cur.rowcount:
                logger.debug(f"Deleted {cur.rowcount} note(s) in folder {current}")
            # Detach any cycle member still pointing here so the row can go.
            conn.execute(
                "UPDATE folders SET parent_id = NULL WHERE parent_id = ?", (current,)
            )
            conn.execute("DELETE FROM folders WHERE id = ?", (current,))
            removed += 1
        return removed


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValidationError("Folder name cannot be empty")
    return name
