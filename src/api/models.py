"""Pydantic request/response schemas for the meeting task tracker API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from src.extraction.models import ExtractionStatus, GoalType, TaskPriority, TaskStatus

# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class MeetingCreate(BaseModel):
    """Request body for POST /api/meetings."""

    title: str = Field(min_length=1, max_length=500)
    transcript: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None


class MeetingCreated(BaseModel):
    """Response for a newly created meeting; extraction has not run yet."""

    id: str
    title: str
    processed: bool = False
    created_at: datetime


class MeetingSummary(BaseModel):
    """Summary representation of a meeting for list views."""

    id: str
    title: str
    processed: bool
    processed_at: datetime | None = None
    extraction_status: ExtractionStatus
    created_at: datetime
    task_count: int = 0


class AssigneeResponse(BaseModel):
    id: str
    name: str
    email: str | None = None

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    """A task with its resolved assignees."""

    id: str
    meeting_id: str | None = None
    title: str
    description: str
    priority: TaskPriority
    deadline: date | None = None
    status: TaskStatus
    goal_id: str | None = None
    category_id: str | None = None
    ai_extracted: bool
    extraction_run_id: str | None = None
    reviewed: bool
    reviewed_at: datetime | None = None
    created_at: datetime
    assignees: list[AssigneeResponse] = []

    model_config = {"from_attributes": True}


class MeetingDetail(BaseModel):
    """Full meeting detail including its tasks."""

    id: str
    title: str
    transcript: str
    metadata: dict[str, Any] = {}
    processed: bool
    processed_at: datetime | None = None
    extraction_status: ExtractionStatus
    last_error: str | None = None
    created_at: datetime
    tasks: list[TaskResponse] = []


class ReprocessResponse(BaseModel):
    success: bool = True
    message: str


class ConfirmTasksResponse(BaseModel):
    success: bool = True
    count: int
    message: str


class ExtractionRunResponse(BaseModel):
    """One recorded extraction run (audit trail)."""

    id: str
    status: str
    context_goal_id: str | None = None
    context_category_id: str | None = None
    context_label: str | None = None
    task_count: int
    error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None
    supersedes_id: str | None = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    role: str | None = Field(default=None, max_length=100)


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    role: str | None = Field(default=None, max_length=100)


class ContactResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ContactStats(BaseModel):
    """Delivery figures over the tasks assigned to one contact."""

    in_progress_count: int = 0
    backlog_count: int = 0
    completed_count: int = 0
    total_tasks: int = 0
    delivery_rate: int = 0
    avg_backlog_days: int = 0
    productivity_score: int = 100


class ContactWithStats(ContactResponse):
    stats: ContactStats


# ---------------------------------------------------------------------------
# Goals and categories
# ---------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    goal_id: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    goal_id: str | None = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    goal_id: str | None = None

    model_config = {"from_attributes": True}


class GoalCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    type: GoalType
    parent_id: str | None = None


class GoalUpdate(BaseModel):
    """Fields of a goal to change; an explicit null ``parent_id`` detaches it."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    type: GoalType | None = None
    parent_id: str | None = None


class GoalResponse(BaseModel):
    id: str
    title: str
    type: GoalType
    parent_id: str | None = None
    created_at: datetime
    categories: list[CategoryResponse] = []

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    """Request body for a user-created task (never marked AI-extracted)."""

    description: str = Field(min_length=1)
    title: str | None = Field(default=None, max_length=500)
    assignee_ids: list[str] = []
    deadline: date | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    goal_id: str | None = None
    category_id: str | None = None
    meeting_id: str | None = None


class TaskUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = Field(default=None, min_length=1)
    assignee_ids: list[str] | None = None
    deadline: date | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    reviewed: bool | None = None
