from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.data.errors import (
    ConstraintViolationError,
    FolderCycleError,
    NotesError,
    NotFoundError,
    ValidationError,
)
from app.data.repository import Repository

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[NotesError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    FolderCycleError: 409,
    ConstraintViolationError: 409,
}


class NoteOut(BaseModel):
    id: int
    title: str
    content: str
    is_markdown: bool
    folder_id: Optional[int]
    tags: List[str]
    created_at: str
    updated_at: str


class NoteIn(BaseModel):
    title: str = Field(default="New note")
    content: str = Field(default="")
    is_markdown: bool = Field(default=True)
    folder_id: Optional[int] = None
    tags: List[str] = Field(default_factory=list)


class FolderOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int]


class FolderCreate(BaseModel):
    name: str
    parent_id: Optional[int] = None


class FolderUpdate(BaseModel):
    name: Optional[str] = None
    # Sent explicitly as null to move a folder to the top level.
    parent_id: Optional[int] = None


class PreferenceIn(BaseModel):
    value: str


class PreferenceOut(BaseModel):
    key: str
    value: Optional[str]


def create_app(db_path: str) -> FastAPI:
    app = FastAPI(title="Tagged Notes API")
    app.state.repo = Repository(db_path)

    @app.exception_handler(NotesError)
    async def notes_error_handler(request: Request, exc: NotesError) -> JSONResponse:
        status_code = _ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    def repo() -> Repository:
        return app.state.repo

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/notes", response_model=list[NoteOut])
    def list_notes(folder_id: Optional[int] = Query(default=None)) -> list[NoteOut]:
        return [NoteOut(**note) for note in repo().list_notes(folder_id)]

    @app.get("/notes/search", response_model=list[NoteOut])
    def search_notes(tag: str = Query(default="")) -> list[NoteOut]:
        return [NoteOut(**note) for note in repo().search_notes(tag)]

    @app.post("/notes", response_model=NoteOut, status_code=201)
    def create_note(payload: NoteIn) -> NoteOut:
        note_id = repo().create_note(
            payload.title,
            payload.content,
            payload.is_markdown,
            payload.folder_id,
            payload.tags,
        )
        return _get_note_or_404(note_id)

    @app.get("/notes/{note_id}", response_model=NoteOut)
    def get_note(note_id: int) -> NoteOut:
        return _get_note_or_404(note_id)

    @app.put("/notes/{note_id}", response_model=NoteOut)
    def update_note(note_id: int, payload: NoteIn) -> NoteOut:
        repo().update_note(
            note_id,
            payload.title,
            payload.content,
            payload.is_markdown,
            payload.folder_id,
            payload.tags,
        )
        return _get_note_or_404(note_id)

    @app.delete("/notes/{note_id}")
    def delete_note(note_id: int) -> dict:
        deleted = repo().delete_note(note_id)
        return {"status": "ok", "deleted": deleted}

    @app.get("/tags", response_model=list[str])
    def list_tags() -> list[str]:
        return repo().list_tags()

    @app.get("/folders", response_model=list[FolderOut])
    def list_folders() -> list[FolderOut]:
        return [FolderOut(**folder) for folder in repo().list_folders()]

    @app.post("/folders", response_model=FolderOut, status_code=201)
    def create_folder(payload: FolderCreate) -> FolderOut:
        folder_id = repo().create_folder(payload.name, payload.parent_id)
        return _get_folder_or_404(folder_id)

    @app.patch("/folders/{folder_id}", response_model=FolderOut)
    def update_folder(folder_id: int, payload: FolderUpdate) -> FolderOut:
        repo().update_folder(
            folder_id,
            name=payload.name,
            parent_id=payload.parent_id,
            move="parent_id" in payload.model_fields_set,
        )
        return _get_folder_or_404(folder_id)

    @app.delete("/folders/{folder_id}")
    def delete_folder(folder_id: int) -> dict:
        removed = repo().delete_folder(folder_id)
        return {"status": "ok", "removed": removed}

    @app.get("/preferences/{key}", response_model=PreferenceOut)
    def get_preference(key: str) -> PreferenceOut:
        return PreferenceOut(key=key, value=repo().get_preference(key))

    @app.put("/preferences/{key}", response_model=PreferenceOut)
    def set_preference(key: str, payload: PreferenceIn) -> PreferenceOut:
        repo().set_preference(key, payload.value)
        return PreferenceOut(key=key, value=payload.value)

    def _get_note_or_404(note_id: int) -> NoteOut:
        note = repo().get_note(note_id)
        if not note:
            raise HTTPException(status_code=404, detail="Note not found")
        return NoteOut(**note)

    def _get_folder_or_404(folder_id: int) -> FolderOut:
        folder = repo().get_folder(folder_id)
        if not folder:
            raise HTTPException(status_code=404, detail="Folder not found")
        return FolderOut(**folder)

    return app
