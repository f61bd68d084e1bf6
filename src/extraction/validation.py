"""Strict decoding of LLM responses for both extraction passes.

Every response is decoded into a Pydantic schema right after the call. A
response whose envelope does not conform is rejected as a whole; inside the
task list, non-conforming items are dropped one by one. On top of the schema
the roster and deadline guards keep the output honest:

- an ``assigneeId`` that is not in the roster is cleared (never fabricated),
- a deadline is cleared unless one of its source excerpts both occurs in the
  transcript and names an explicit date or timeframe,
- an item whose title normalises to nothing is dropped.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from datetime import date
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from src.extraction.models import (
    ContactContext,
    ContextResolution,
    ExtractedTask,
    GoalContext,
    TaskPriority,
)
from src.extraction.prompts import MAX_TITLE_WORDS

logger = logging.getLogger(__name__)


class ResponseSchemaError(ValueError):
    """An LLM response is empty, not JSON, or not the expected shape."""


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


def _clean_optional_str(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str):
        value = " ".join(value.split())
        return value or None
    return value


class ContextPayload(BaseModel):
    """Shape of the context pass response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    goal_id: str | None = Field(default=None, alias="goalId")
    category_id: str | None = Field(default=None, alias="categoryId")

    @field_validator("goal_id", "category_id", mode="before")
    @classmethod
    def _clean_ids(cls, value: Any) -> Any:
        return _clean_optional_str(value)


class TaskPayload(BaseModel):
    """Shape of one item in the task pass ``tasks`` array."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str | None = None
    description: str | None = None
    assignee_id: str | None = Field(default=None, alias="assigneeId")
    assignee_name: str | None = Field(default=None, alias="assigneeName")
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: date | None = None
    source_excerpts: list[str] = Field(default_factory=list, alias="sourceExcerpts")

    @field_validator("title", "description", "assignee_id", "assignee_name", mode="before")
    @classmethod
    def _clean_strings(cls, value: Any) -> Any:
        return _clean_optional_str(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalise_priority(cls, value: Any) -> Any:
        if value is None:
            return TaskPriority.MEDIUM
        if isinstance(value, str):
            return value.strip().lower() or TaskPriority.MEDIUM
        return value

    @field_validator("deadline", mode="before")
    @classmethod
    def _parse_deadline(cls, value: Any) -> Any:
        if value is None or isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise ValueError("deadline must be a YYYY-MM-DD string")
        text = value.strip()
        if not text or text.lower() in ("null", "none", "n/a"):
            return None
        try:
            # Accept full ISO timestamps too; only the date part is kept.
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.warning("Ignoring unparseable deadline %r", value)
            return None

    @field_validator("source_excerpts", mode="before")
    @classmethod
    def _listify_excerpts(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @model_validator(mode="after")
    def _require_content(self) -> TaskPayload:
        if not self.title and not self.description:
            raise ValueError("task has neither title nor description")
        return self


# ---------------------------------------------------------------------------
# Temporal cues (deadline evidence)
# ---------------------------------------------------------------------------

_MONTHS = (
    r"january|february|march|april|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sept?|oct|nov|dec"
)
_UNITS = r"days?|weeks?|months?|hours?"
_COUNTS = r"\d+|a|an|one|two|three|four|five|six|a\s+couple\s+of|a\s+few"

_TEMPORAL_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(mon|tues|wednes|thurs|fri|satur|sun)day\b", re.IGNORECASE),
    re.compile(rf"\b({_MONTHS})\.?\s+\d{{1,2}}(st|nd|rd|th)?\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}(st|nd|rd|th)?\s+(of\s+)?({_MONTHS})\b", re.IGNORECASE),
    re.compile(rf"\b(end|beginning|start|middle)\s+of\s+({_MONTHS}|may)\b", re.IGNORECASE),
    re.compile(r"\bmay\s+\d{1,2}(st|nd|rd|th)?\b", re.IGNORECASE),
    re.compile(r"\b(today|tonight|tomorrow)\b", re.IGNORECASE),
    re.compile(
        r"\b(next|this|coming)\s+(week|month|quarter|year|sprint|weekend)\b", re.IGNORECASE
    ),
    re.compile(
        r"\bend\s+of\s+(the\s+)?(day|week|month|quarter|year|sprint)\b", re.IGNORECASE
    ),
    re.compile(r"\b(eod|eow|eom|cob)\b", re.IGNORECASE),
    re.compile(rf"\b(in|within)\s+({_COUNTS})\s+({_UNITS})\b", re.IGNORECASE),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}(/\d{2,4})?\b"),
    re.compile(r"\b(by|before|until|due)\s+(the\s+)?\d{1,2}(st|nd|rd|th)\b", re.IGNORECASE),
    re.compile(r"\b(by|before|until|due|end\s+of)\s+q[1-4]\b", re.IGNORECASE),
]


def has_temporal_cue(text: str) -> bool:
    """True if ``text`` contains an explicit date or relative timeframe."""
    return any(p.search(text) for p in _TEMPORAL_PATTERNS)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def decode_json(raw: str | None) -> Any:
    """Parse raw LLM output, tolerating a surrounding markdown code fence.

    Raises:
        ResponseSchemaError: The content is empty or not valid JSON.
    """
    if raw is None or not raw.strip():
        raise ResponseSchemaError("empty response")
    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResponseSchemaError(f"invalid JSON: {exc}") from exc


def parse_context_response(
    raw: str | None, goals: Sequence[GoalContext]
) -> ContextResolution | None:
    """Decode a context pass response against the goal tree it was asked about.

    Ids that are not in ``goals`` are discarded. When both a goal and a
    category survive, the category wins.

    Raises:
        ResponseSchemaError: The response is not a JSON object of the right shape.
    """
    data = decode_json(raw)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ResponseSchemaError(f"expected a JSON object, got {type(data).__name__}")
    try:
        payload = ContextPayload.model_validate(data)
    except ValidationError as exc:
        raise ResponseSchemaError(f"context response does not conform: {exc}") from exc

    goal_ids = {g.id for g in goals}
    category_ids = {c.id for g in goals for c in g.categories}

    category_id = payload.category_id
    if category_id and category_id not in category_ids:
        logger.warning("Context response named unknown category %s; ignoring it", category_id)
        category_id = None
    goal_id = payload.goal_id
    if goal_id and goal_id not in goal_ids:
        logger.warning("Context response named unknown goal %s; ignoring it", goal_id)
        goal_id = None

    if category_id:
        return ContextResolution(category_id=category_id)
    if goal_id:
        return ContextResolution(goal_id=goal_id)
    return None


_TITLE_FILLER = re.compile(
    r"^(?:(?:we|i|you)\s+)?(?:(?:need|needs|have|has)\s+to|make\s+sure\s+(?:to|that)|"
    r"should|please|let'?s|todo:?)(?:\s+|$)",
    re.IGNORECASE,
)


def normalize_title(text: str) -> str:
    """Strip filler openings and trailing punctuation; cap at MAX_TITLE_WORDS words."""
    title = " ".join(text.split()).rstrip(".,;:!")
    title = _TITLE_FILLER.sub("", title)
    words = title.split()[:MAX_TITLE_WORDS]
    title = " ".join(words).rstrip(".,;:!")
    return title[:1].upper() + title[1:]


def _normalise_evidence(text: str) -> str:
    return " ".join(text.split()).strip(" .\"'\u2026").casefold()


def _deadline_evidence(excerpts: Sequence[str], transcript: str) -> list[str]:
    """Excerpts that actually occur in the transcript."""
    haystack = _normalise_evidence(transcript)
    found = []
    for excerpt in excerpts:
        needle = _normalise_evidence(excerpt)
        if needle and needle in haystack:
            found.append(excerpt)
        else:
            logger.warning("Ignoring excerpt not found in transcript: %r", excerpt)
    return found


def _to_extracted_task(
    payload: TaskPayload,
    roster: dict[str, ContactContext],
    transcript: str,
) -> ExtractedTask | None:
    title = normalize_title(payload.title or payload.description or "")
    if not title:
        return None
    description = payload.description or payload.title or ""

    assignee_id = payload.assignee_id
    assignee_name = payload.assignee_name
    if assignee_id is not None:
        contact = roster.get(assignee_id)
        if contact is None:
            logger.warning("Clearing assignee id %s: not in the contact roster", assignee_id)
            assignee_id = None
        else:
            assignee_name = contact.name

    deadline = payload.deadline
    if deadline is not None:
        evidence = _deadline_evidence(payload.source_excerpts, transcript)
        if not any(has_temporal_cue(text) for text in evidence):
            logger.warning("Clearing deadline %s on %r: no explicit timeframe", deadline, title)
            deadline = None

    return ExtractedTask(
        title=title,
        description=description,
        assignee_id=assignee_id,
        assignee_name=assignee_name,
        priority=payload.priority,
        deadline=deadline,
        source_excerpts=list(payload.source_excerpts),
    )


def merge_duplicate_tasks(tasks: list[ExtractedTask]) -> list[ExtractedTask]:
    """Collapse tasks with the same title and owner, keeping the first one."""
    merged: dict[tuple[str, str], ExtractedTask] = {}
    for task in tasks:
        owner = task.assignee_id or (task.assignee_name or "").lower()
        key = (task.title.lower(), owner)
        first = merged.get(key)
        if first is None:
            merged[key] = task
            continue
        for excerpt in task.source_excerpts:
            if excerpt not in first.source_excerpts:
                first.source_excerpts.append(excerpt)
        if first.deadline is None:
            first.deadline = task.deadline
        if len(task.description) > len(first.description):
            first.description = task.description
    return list(merged.values())


def parse_task_response(
    raw: str | None,
    contacts: Sequence[ContactContext],
    transcript: str,
) -> list[ExtractedTask]:
    """Decode a task pass response into checked :class:`ExtractedTask` objects.

    Raises:
        ResponseSchemaError: The envelope is not ``{"tasks": [...]}``.
    """
    data = decode_json(raw)
    if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
        raise ResponseSchemaError("expected a JSON object with a 'tasks' array")

    roster = {c.id: c for c in contacts}
    tasks: list[ExtractedTask] = []
    for index, item in enumerate(data["tasks"]):
        try:
            payload = TaskPayload.model_validate(item)
        except ValidationError as exc:
            logger.warning("Dropping task %d from LLM response: %s", index, exc)
            continue
        task = _to_extracted_task(payload, roster, transcript)
        if task is None:
            logger.warning("Dropping task %d from LLM response: empty title", index)
            continue
        tasks.append(task)

    return merge_duplicate_tasks(tasks)
