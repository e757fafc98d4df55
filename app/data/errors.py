"""Typed failures raised by the persistence layer.

Every error carries a human-readable ``message`` and a short machine-readable
``code`` so the presentation layer can decide what to show.
"""

from __future__ import annotations


class NotesError(Exception):
    """Base class for all persistence errors."""

    def __init__(self, message: str, code: str = "NOTES_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class SchemaError(NotesError):
    """The database schema could not be provisioned. Fatal at startup."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SCHEMA_FAILED")


class StorageError(NotesError):
    """The underlying store failed (I/O, corrupt file, broken invariant)."""

    def __init__(self, message: str, code: str = "STORAGE_FAILED") -> None:
        super().__init__(message, code=code)


class ConstraintViolationError(StorageError):
    """A write was rejected by a uniqueness or foreign-key constraint."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONSTRAINT_VIOLATION")


class NotFoundError(NotesError):
    """The target of a mutation does not exist."""

    def __init__(self, kind: str, ident: int) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind.capitalize()} {ident} not found", code="NOT_FOUND")


class ValidationError(NotesError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_FAILED")


class FolderCycleError(NotesError):
    """Moving a folder would make it its own ancestor."""

    def __init__(self, folder_id: int, parent_id: int) -> None:
        self.folder_id = folder_id
        self.parent_id = parent_id
        super().__init__(
            f"Folder {folder_id} cannot be moved under {parent_id}: "
            "a folder cannot contain itself",
            code="FOLDER_CYCLE",
        )
