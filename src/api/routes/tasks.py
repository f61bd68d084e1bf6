"""Task endpoints for user-created tasks and review of extracted ones."""

from __future__ import annotations

from collections.abc import Sequence

from fastapi import APIRouter, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from src.api.deps import AuthUser, DbSession, get_owned_or_404
from src.api.models import TaskCreate, TaskResponse, TaskUpdate
from src.db.models import Category, Contact, Goal, Meeting, Task, utcnow
from src.extraction.models import TaskStatus
from src.extraction.validation import normalize_title

router = APIRouter()


def _owned_contacts(db: Session, owner_id: str, contact_ids: Sequence[str]) -> list[Contact]:
    """Load the contacts for ``contact_ids``; any foreign or unknown id is a 400."""
    wanted = set(contact_ids)
    if not wanted:
        return []
    contacts = db.scalars(
        select(Contact).where(Contact.id.in_(wanted), Contact.owner_id == owner_id)
    ).all()
    if len(contacts) != len(wanted):
        raise HTTPException(status_code=400, detail="Unknown assignee")
    return list(contacts)


def _check_owned(db: Session, model: type, owner_id: str, object_id: str | None, label: str) -> None:
    if object_id is None:
        return
    found = db.scalar(select(model.id).where(model.id == object_id, model.owner_id == owner_id))
    if found is None:
        raise HTTPException(status_code=400, detail=f"{label} not found")


@router.get("/api/tasks", response_model=list[TaskResponse])
async def list_tasks(
    user: AuthUser,
    db: DbSession,
    status: TaskStatus | None = None,
    meeting_id: str | None = None,
    assignee_id: str | None = None,
    reviewed: bool | None = None,
) -> list[TaskResponse]:
    """List the caller's tasks, newest first, with optional filters."""
    query = (
        select(Task)
        .where(Task.owner_id == user.id)
        .options(selectinload(Task.assignees))
        .order_by(Task.created_at.desc())
    )
    if status is not None:
        query = query.where(Task.status == status.value)
    if meeting_id is not None:
        query = query.where(Task.meeting_id == meeting_id)
    if assignee_id is not None:
        query = query.where(Task.assignees.any(Contact.id == assignee_id))
    if reviewed is not None:
        query = query.where(Task.reviewed.is_(reviewed))

    return [TaskResponse.model_validate(t) for t in db.scalars(query).all()]


@router.post("/api/tasks", response_model=TaskResponse, status_code=201)
async def create_task(body: TaskCreate, user: AuthUser, db: DbSession) -> TaskResponse:
    """Create a task by hand. Such tasks survive reprocessing of their meeting."""
    _check_owned(db, Meeting, user.id, body.meeting_id, "Meeting")
    _check_owned(db, Goal, user.id, body.goal_id, "Goal")
    _check_owned(db, Category, user.id, body.category_id, "Category")
    assignees = _owned_contacts(db, user.id, body.assignee_ids)

    task = Task(
        owner_id=user.id,
        meeting_id=body.meeting_id,
        title=body.title or normalize_title(body.description) or body.description.strip(),
        description=body.description,
        priority=body.priority.value,
        deadline=body.deadline,
        status=body.status.value,
        goal_id=body.goal_id,
        category_id=body.category_id,
        ai_extracted=False,
    )
    task.assignees = assignees
    db.add(task)
    db.commit()
    return TaskResponse.model_validate(task)


@router.patch("/api/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str, body: TaskUpdate, user: AuthUser, db: DbSession
) -> TaskResponse:
    """Update the fields present in the body; ``assignee_ids`` replaces the assignment."""
    task = get_owned_or_404(db, Task, user.id, task_id, "Task")
    changes = body.model_dump(exclude_unset=True)

    if "assignee_ids" in changes:
        task.assignees = _owned_contacts(db, user.id, changes.pop("assignee_ids") or [])
    if changes.get("reviewed"):
        task.reviewed_at = utcnow()
    elif changes.get("reviewed") is False:
        task.reviewed_at = None

    for field, value in changes.items():
        if value is None and field != "deadline":
            continue
        setattr(task, field, value.value if field in ("status", "priority") else value)

    db.commit()
    return TaskResponse.model_validate(task)


@router.put("/api/tasks/{task_id}/review", response_model=TaskResponse)
async def review_task(task_id: str, user: AuthUser, db: DbSession) -> TaskResponse:
    """Mark a single task as reviewed."""
    task = get_owned_or_404(db, Task, user.id, task_id, "Task")
    task.reviewed = True
    task.reviewed_at = utcnow()
    db.commit()
    return TaskResponse.model_validate(task)


@router.delete("/api/tasks/{task_id}", status_code=204)
async def delete_task(task_id: str, user: AuthUser, db: DbSession) -> Response:
    task = get_owned_or_404(db, Task, user.id, task_id, "Task")
    db.delete(task)
    db.commit()
    return Response(status_code=204)
