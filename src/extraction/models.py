"""Data models for the transcript extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum


class GoalType(StrEnum):
    YEARLY = "YEARLY"
    QUARTERLY = "QUARTERLY"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExtractionStatus(StrEnum):
    """Where a meeting stands in the extraction lifecycle."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"  # no LLM provider configured


class RunStatus(StrEnum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CategoryContext:
    id: str
    name: str


@dataclass(frozen=True)
class GoalContext:
    """A goal and its categories, as shown to the context resolver."""

    id: str
    title: str
    type: str
    parent_id: str | None = None
    categories: tuple[CategoryContext, ...] = ()


@dataclass(frozen=True)
class ContactContext:
    """A roster entry the extractor may assign tasks to."""

    id: str
    name: str
    role: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ContextResolution:
    """The single goal or category a transcript was classified under."""

    goal_id: str | None = None
    category_id: str | None = None

    def __post_init__(self) -> None:
        if self.goal_id and self.category_id:
            raise ValueError("ContextResolution holds a goal or a category, not both")
        if not self.goal_id and not self.category_id:
            raise ValueError("ContextResolution needs a goal_id or a category_id")


@dataclass
class ExtractedTask:
    """A single task produced by the extractor, before persistence."""

    title: str
    description: str = ""
    assignee_id: str | None = None
    assignee_name: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: date | None = None
    source_excerpts: list[str] = field(default_factory=list)
