"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from collections.abc import Generator
from typing import Annotated, TypeVar

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.api.auth import CurrentUser, get_current_user
from src.db.database import Base
from src.extraction.queue import ExtractionQueue

ModelT = TypeVar("ModelT", bound=Base)


def get_db(request: Request) -> Generator[Session, None, None]:
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_extraction_queue(request: Request) -> ExtractionQueue:
    return request.app.state.extraction_queue  # type: ignore[no-any-return]


DbSession = Annotated[Session, Depends(get_db)]
AuthUser = Annotated[CurrentUser, Depends(get_current_user)]
Queue = Annotated[ExtractionQueue, Depends(get_extraction_queue)]


def get_owned_or_404(
    db: Session, model: type[ModelT], owner_id: str, object_id: str, label: str
) -> ModelT:
    """Fetch ``model`` by id for ``owner_id``; foreign or missing ids are a 404."""
    obj = db.scalar(
        select(model).where(model.id == object_id, model.owner_id == owner_id)  # type: ignore[attr-defined]
    )
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj
