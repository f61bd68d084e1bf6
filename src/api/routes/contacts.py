"""Contact endpoints. Contacts are the assignee roster offered to extraction."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date

from fastapi import APIRouter, Response
from sqlalchemy import select

from src.api.deps import AuthUser, DbSession, get_owned_or_404
from src.api.models import (
    ContactCreate,
    ContactResponse,
    ContactStats,
    ContactUpdate,
    ContactWithStats,
)
from src.db.models import Contact, Task, task_assignees
from src.extraction.models import TaskStatus

router = APIRouter()

_CLOSED = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


def contact_stats(tasks: Sequence[tuple[str, date | None]], today: date) -> ContactStats:
    """Delivery figures for one contact from ``(status, deadline)`` pairs.

    A task is backlog when its deadline has passed and it is neither completed
    nor cancelled. The productivity score counts backlog against the total.
    """
    total = len(tasks)
    completed = sum(1 for status, _ in tasks if status == TaskStatus.COMPLETED)
    overdue_days = [
        (today - deadline).days
        for status, deadline in tasks
        if deadline is not None and deadline < today and status not in _CLOSED
    ]
    backlog = len(overdue_days)

    return ContactStats(
        in_progress_count=sum(1 for status, _ in tasks if status == TaskStatus.IN_PROGRESS),
        backlog_count=backlog,
        completed_count=completed,
        total_tasks=total,
        delivery_rate=round(completed / total * 100) if total else 0,
        avg_backlog_days=round(sum(overdue_days) / backlog) if backlog else 0,
        productivity_score=round(completed / (total + backlog) * 100) if total else 100,
    )


@router.get("/api/contacts", response_model=list[ContactResponse])
async def list_contacts(user: AuthUser, db: DbSession) -> list[ContactResponse]:
    contacts = db.scalars(
        select(Contact).where(Contact.owner_id == user.id).order_by(Contact.name)
    ).all()
    return [ContactResponse.model_validate(c) for c in contacts]


@router.get("/api/contacts/stats", response_model=list[ContactWithStats])
async def list_contact_stats(user: AuthUser, db: DbSession) -> list[ContactWithStats]:
    """Contacts by name, each with figures over the tasks assigned to them."""
    contacts = db.scalars(
        select(Contact).where(Contact.owner_id == user.id).order_by(Contact.name)
    ).all()
    rows = db.execute(
        select(task_assignees.c.contact_id, Task.status, Task.deadline)
        .join(Task, Task.id == task_assignees.c.task_id)
        .where(Task.owner_id == user.id)
    ).all()
    by_contact: dict[str, list[tuple[str, date | None]]] = defaultdict(list)
    for contact_id, status, deadline in rows:
        by_contact[contact_id].append((status, deadline))

    today = date.today()
    return [
        ContactWithStats(
            **ContactResponse.model_validate(c).model_dump(),
            stats=contact_stats(by_contact[c.id], today),
        )
        for c in contacts
    ]


@router.post("/api/contacts", response_model=ContactResponse, status_code=201)
async def create_contact(body: ContactCreate, user: AuthUser, db: DbSession) -> ContactResponse:
    contact = Contact(owner_id=user.id, name=body.name, email=body.email, role=body.role)
    db.add(contact)
    db.commit()
    return ContactResponse.model_validate(contact)


@router.patch("/api/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: str, body: ContactUpdate, user: AuthUser, db: DbSession
) -> ContactResponse:
    """Update the fields present in the request body."""
    contact = get_owned_or_404(db, Contact, user.id, contact_id, "Contact")
    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(contact, field, value)
    db.commit()
    return ContactResponse.model_validate(contact)


@router.delete("/api/contacts/{contact_id}", status_code=204)
async def delete_contact(contact_id: str, user: AuthUser, db: DbSession) -> Response:
    """Delete a contact; tasks assigned to it lose that assignment."""
    contact = get_owned_or_404(db, Contact, user.id, contact_id, "Contact")
    db.delete(contact)
    db.commit()
    return Response(status_code=204)
