"""Meeting endpoints: create (and queue extraction), list, detail, reprocess, delete."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Response
from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from src.api.deps import AuthUser, DbSession, Queue
from src.api.models import (
    ConfirmTasksResponse,
    ExtractionRunResponse,
    MeetingCreate,
    MeetingCreated,
    MeetingDetail,
    MeetingSummary,
    ReprocessResponse,
    TaskResponse,
)
from src.db import repository
from src.db.models import ExtractionRun, Meeting, Task, utcnow
from src.extraction.queue import ExtractionQueueFull

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/meetings", response_model=MeetingCreated, status_code=201)
async def create_meeting(
    body: MeetingCreate, user: AuthUser, db: DbSession, queue: Queue
) -> MeetingCreated:
    """Store a meeting and queue its extraction.

    The response is sent before extraction starts, so ``processed`` is
    always false here. Poll the meeting to see ``extraction_status``.
    """
    meeting = Meeting(
        owner_id=user.id,
        title=body.title,
        transcript=body.transcript,
        meeting_metadata=body.metadata or {},
    )
    db.add(meeting)
    db.commit()

    try:
        queue.submit(meeting.id)
    except ExtractionQueueFull:
        logger.warning("Extraction queue full; meeting %s stays pending", meeting.id)

    return MeetingCreated(
        id=meeting.id,
        title=meeting.title,
        processed=False,
        created_at=meeting.created_at,
    )


@router.get("/api/meetings", response_model=list[MeetingSummary])
async def list_meetings(user: AuthUser, db: DbSession) -> list[MeetingSummary]:
    """List the caller's meetings, newest first."""
    meetings = db.scalars(
        select(Meeting).where(Meeting.owner_id == user.id).order_by(Meeting.created_at.desc())
    ).all()
    counts = repository.count_tasks_by_meeting(db, [m.id for m in meetings])

    return [
        MeetingSummary(
            id=m.id,
            title=m.title,
            processed=m.processed,
            processed_at=m.processed_at,
            extraction_status=m.extraction_status,
            created_at=m.created_at,
            task_count=counts.get(m.id, 0),
        )
        for m in meetings
    ]


@router.get("/api/meetings/{meeting_id}", response_model=MeetingDetail)
async def get_meeting(meeting_id: str, user: AuthUser, db: DbSession) -> MeetingDetail:
    """Get a meeting with its tasks and their assignees."""
    meeting = db.scalar(
        select(Meeting)
        .where(Meeting.id == meeting_id, Meeting.owner_id == user.id)
        .options(selectinload(Meeting.tasks).selectinload(Task.assignees))
    )
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    return MeetingDetail(
        id=meeting.id,
        title=meeting.title,
        transcript=meeting.transcript,
        metadata=meeting.meeting_metadata or {},
        processed=meeting.processed,
        processed_at=meeting.processed_at,
        extraction_status=meeting.extraction_status,
        last_error=meeting.last_error,
        created_at=meeting.created_at,
        tasks=[TaskResponse.model_validate(t) for t in meeting.tasks],
    )


@router.post("/api/meetings/{meeting_id}/reprocess", response_model=ReprocessResponse)
async def reprocess_meeting(
    meeting_id: str, user: AuthUser, db: DbSession, queue: Queue
) -> ReprocessResponse:
    """Re-run extraction against the unchanged transcript.

    The meeting's AI-extracted tasks are deleted and the meeting is reset to
    unprocessed before the response is sent. User-created tasks stay.
    """
    meeting = repository.get_owned_meeting(db, user.id, meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    if queue.full():
        raise HTTPException(
            status_code=503,
            detail="Extraction queue is full, please retry shortly",
        )

    removed = repository.delete_ai_tasks(db, meeting_id)
    repository.reset_for_reprocess(meeting)
    db.commit()
    logger.info("Reprocessing meeting %s: %d AI tasks removed", meeting_id, removed)
    queue.submit(meeting_id)

    return ReprocessResponse(success=True, message="Reprocessing started")


@router.post("/api/meetings/{meeting_id}/confirm-tasks", response_model=ConfirmTasksResponse)
async def confirm_tasks(
    meeting_id: str, user: AuthUser, db: DbSession
) -> ConfirmTasksResponse:
    """Mark every unreviewed task of the meeting as reviewed."""
    if repository.get_owned_meeting(db, user.id, meeting_id) is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    result = db.execute(
        update(Task)
        .where(Task.meeting_id == meeting_id, Task.reviewed.is_(False))
        .values(reviewed=True, reviewed_at=utcnow())
    )
    db.commit()
    count = result.rowcount or 0  # type: ignore[attr-defined]

    return ConfirmTasksResponse(success=True, count=count, message=f"Confirmed {count} tasks")


@router.get(
    "/api/meetings/{meeting_id}/extraction-runs",
    response_model=list[ExtractionRunResponse],
)
async def list_extraction_runs(
    meeting_id: str, user: AuthUser, db: DbSession
) -> list[ExtractionRunResponse]:
    """Extraction history of a meeting, newest first."""
    if repository.get_owned_meeting(db, user.id, meeting_id) is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    runs = db.scalars(
        select(ExtractionRun)
        .where(ExtractionRun.meeting_id == meeting_id)
        .order_by(ExtractionRun.started_at.desc())
    ).all()
    return [ExtractionRunResponse.model_validate(r) for r in runs]


@router.delete("/api/meetings/{meeting_id}", status_code=204)
async def delete_meeting(meeting_id: str, user: AuthUser, db: DbSession) -> Response:
    """Delete a meeting together with its tasks and extraction history."""
    meeting = repository.get_owned_meeting(db, user.id, meeting_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    db.delete(meeting)
    db.commit()
    return Response(status_code=204)
