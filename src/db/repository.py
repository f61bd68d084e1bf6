"""Persistence helpers used by the extraction pipeline.

Functions take an open :class:`Session` as first argument and never commit;
the caller owns the transaction boundary.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from src.db.models import Contact, ExtractionRun, Goal, Meeting, Task
from src.extraction.models import (
    CategoryContext,
    ContactContext,
    ContextResolution,
    ExtractedTask,
    ExtractionStatus,
    GoalContext,
    RunStatus,
    TaskStatus,
)


def get_owned_meeting(session: Session, owner_id: str, meeting_id: str) -> Meeting | None:
    """Return the meeting if it exists and belongs to ``owner_id``."""
    return session.scalar(
        select(Meeting).where(Meeting.id == meeting_id, Meeting.owner_id == owner_id)
    )


def load_goal_tree(session: Session, owner_id: str) -> list[GoalContext]:
    """All of the owner's goals with their categories, oldest first."""
    goals = session.scalars(
        select(Goal)
        .where(Goal.owner_id == owner_id)
        .options(selectinload(Goal.categories))
        .order_by(Goal.created_at)
    ).all()
    return [
        GoalContext(
            id=g.id,
            title=g.title,
            type=g.type,
            parent_id=g.parent_id,
            categories=tuple(CategoryContext(id=c.id, name=c.name) for c in g.categories),
        )
        for g in goals
    ]


def load_contact_roster(session: Session, owner_id: str) -> list[ContactContext]:
    contacts = session.scalars(
        select(Contact).where(Contact.owner_id == owner_id).order_by(Contact.name)
    ).all()
    return [ContactContext(id=c.id, name=c.name, role=c.role, email=c.email) for c in contacts]


def reset_for_reprocess(meeting: Meeting) -> None:
    meeting.processed = False
    meeting.processed_at = None
    meeting.extraction_status = ExtractionStatus.PENDING.value
    meeting.last_error = None


def start_run(session: Session, meeting: Meeting, now: datetime) -> ExtractionRun:
    """Record a new running extraction and flag the meeting as extracting."""
    run = ExtractionRun(meeting_id=meeting.id, status=RunStatus.RUNNING.value, started_at=now)
    session.add(run)
    meeting.extraction_status = ExtractionStatus.EXTRACTING.value
    meeting.last_error = None
    session.flush()
    return run


def latest_succeeded_run(
    session: Session, meeting_id: str, exclude_id: str | None = None
) -> ExtractionRun | None:
    query = select(ExtractionRun).where(
        ExtractionRun.meeting_id == meeting_id,
        ExtractionRun.status == RunStatus.SUCCEEDED.value,
    )
    if exclude_id is not None:
        query = query.where(ExtractionRun.id != exclude_id)
    return session.scalars(
        query.order_by(ExtractionRun.finished_at.desc()).limit(1)
    ).first()


def delete_ai_tasks(session: Session, meeting_id: str, keep_run_id: str | None = None) -> int:
    """Delete the meeting's AI-extracted tasks, except those of ``keep_run_id``.

    User-created tasks are never touched. Returns the number deleted.
    """
    query = select(Task).where(Task.meeting_id == meeting_id, Task.ai_extracted.is_(True))
    if keep_run_id is not None:
        query = query.where(
            (Task.extraction_run_id != keep_run_id) | Task.extraction_run_id.is_(None)
        )
    tasks = session.scalars(query).all()
    for task in tasks:
        session.delete(task)
    return len(tasks)


def create_ai_tasks(
    session: Session,
    meeting: Meeting,
    run: ExtractionRun,
    extracted: Sequence[ExtractedTask],
    resolution: ContextResolution | None,
) -> list[Task]:
    """Create one Task (plus its optional assignment) per extracted task."""
    contact_ids = {t.assignee_id for t in extracted if t.assignee_id}
    contacts = {
        c.id: c
        for c in session.scalars(
            select(Contact).where(
                Contact.id.in_(contact_ids), Contact.owner_id == meeting.owner_id
            )
        ).all()
    } if contact_ids else {}

    created: list[Task] = []
    for item in extracted:
        task = Task(
            owner_id=meeting.owner_id,
            meeting_id=meeting.id,
            title=item.title,
            description=item.description,
            priority=item.priority.value,
            deadline=item.deadline,
            goal_id=resolution.goal_id if resolution else None,
            category_id=resolution.category_id if resolution else None,
            ai_extracted=True,
            extraction_run_id=run.id,
            status=TaskStatus.PENDING.value,
        )
        contact = contacts.get(item.assignee_id) if item.assignee_id else None
        if contact is not None:
            task.assignees.append(contact)
        session.add(task)
        created.append(task)
    session.flush()
    return created


def mark_processed(
    session: Session,
    meeting: Meeting,
    run: ExtractionRun,
    resolution: ContextResolution | None,
    context_label: str,
    task_count: int,
    now: datetime,
) -> None:
    """Close a run as succeeded and flip the meeting to processed."""
    previous = latest_succeeded_run(session, meeting.id, exclude_id=run.id)
    run.status = RunStatus.SUCCEEDED.value
    run.supersedes_id = previous.id if previous else None
    run.context_goal_id = resolution.goal_id if resolution else None
    run.context_category_id = resolution.category_id if resolution else None
    run.context_label = context_label
    run.task_count = task_count
    run.finished_at = now

    meeting.processed = True
    meeting.processed_at = now
    meeting.extraction_status = ExtractionStatus.DONE.value
    meeting.last_error = None


def mark_failed(
    session: Session,
    meeting_id: str,
    run_id: str | None,
    error: str,
    now: datetime,
    status: ExtractionStatus = ExtractionStatus.FAILED,
) -> None:
    """Record a failed (or skipped) run; ``processed`` is left as it was."""
    meeting = session.get(Meeting, meeting_id)
    if meeting is not None:
        meeting.extraction_status = status.value
        meeting.last_error = error
    run = session.get(ExtractionRun, run_id) if run_id else None
    if run is not None:
        run.status = (
            RunStatus.SKIPPED.value if status is ExtractionStatus.SKIPPED else RunStatus.FAILED.value
        )
        run.error = error
        run.finished_at = now


def count_tasks_by_meeting(session: Session, meeting_ids: Sequence[str]) -> dict[str, int]:
    if not meeting_ids:
        return {}
    rows = session.execute(
        select(Task.meeting_id, func.count(Task.id))
        .where(Task.meeting_id.in_(meeting_ids))
        .group_by(Task.meeting_id)
    ).all()
    return {meeting_id: count for meeting_id, count in rows}
