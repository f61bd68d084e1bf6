"""Extraction orchestrator: resolve context -> extract tasks -> persist atomically.

One call to :meth:`ExtractionOrchestrator.run` is one extraction run for one
meeting. The database is touched in three short sessions so that no
transaction stays open while the LLM is working:

1. load the meeting, record the run, load the goal tree and contact roster;
2. (no session) context pass, then task pass;
3. one transaction: replace earlier AI tasks, write the new ones, flip the
   meeting to processed.

Any exception in 1-3 rolls back the open transaction, marks the meeting and
the run as failed, and is logged with the meeting id. ``processed`` keeps
the value it had before the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from src.config import Settings, settings
from src.db import repository
from src.db.models import ExtractionRun, Meeting, utcnow
from src.extraction.context_resolver import ContextResolver
from src.extraction.extractor import GENERAL_CONTEXT, TaskExtractor
from src.extraction.models import (
    ContactContext,
    ContextResolution,
    ExtractedTask,
    ExtractionStatus,
    GoalContext,
)
from src.llm.gateway import LLMGateway

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ERROR = "AI service not configured (no API key for the LLM provider)"


def context_label(resolution: ContextResolution | None, goals: Sequence[GoalContext]) -> str:
    """Walk a resolution back to its goal title or category name."""
    if resolution is None:
        return GENERAL_CONTEXT
    for goal in goals:
        if resolution.goal_id and goal.id == resolution.goal_id:
            return goal.title
        for category in goal.categories:
            if resolution.category_id and category.id == resolution.category_id:
                return category.name
    return GENERAL_CONTEXT


@dataclass
class _RunInput:
    run_id: str
    transcript: str
    goals: list[GoalContext]
    contacts: list[ContactContext]


class ExtractionOrchestrator:
    """Runs the two-pass extraction for a meeting and stores the result."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        resolver: ContextResolver | None,
        extractor: TaskExtractor | None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.resolver = resolver
        self.extractor = extractor
        self.clock = clock

    @classmethod
    def from_gateway(
        cls,
        session_factory: sessionmaker[Session],
        gateway: LLMGateway | None,
        cfg: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> ExtractionOrchestrator:
        """Build resolver and extractor around ``gateway`` (None disables extraction)."""
        if gateway is None:
            return cls(session_factory, None, None, clock=clock)
        return cls(
            session_factory,
            ContextResolver(
                gateway,
                temperature=cfg.context_temperature,
                max_chars=cfg.context_max_chars,
            ),
            TaskExtractor(gateway, temperature=cfg.extraction_temperature),
            clock=clock,
        )

    @property
    def configured(self) -> bool:
        return self.resolver is not None and self.extractor is not None

    def run(self, meeting_id: str) -> None:
        """Execute one extraction run for ``meeting_id``; never raises for run failures."""
        logger.info("Starting extraction for meeting %s", meeting_id)
        run_id: str | None = None
        try:
            run_input = self._begin(meeting_id)
            if run_input is None:
                return
            run_id = run_input.run_id

            resolution, label, tasks = self._extract(run_input)
            self._persist(meeting_id, run_id, resolution, label, tasks)
        except Exception as exc:
            logger.exception("Extraction failed for meeting %s", meeting_id)
            self._record_failure(meeting_id, run_id, f"{type(exc).__name__}: {exc}")

    def _begin(self, meeting_id: str) -> _RunInput | None:
        with self.session_factory() as session:
            meeting = session.get(Meeting, meeting_id)
            if meeting is None:
                logger.warning("Meeting %s no longer exists; nothing to extract", meeting_id)
                return None

            run = repository.start_run(session, meeting, self.clock())
            if not self.configured:
                logger.warning(
                    "Skipping extraction for meeting %s: %s", meeting_id, NOT_CONFIGURED_ERROR
                )
                repository.mark_failed(
                    session,
                    meeting_id,
                    run.id,
                    NOT_CONFIGURED_ERROR,
                    self.clock(),
                    status=ExtractionStatus.SKIPPED,
                )
                session.commit()
                return None

            run_input = _RunInput(
                run_id=run.id,
                transcript=meeting.transcript,
                goals=repository.load_goal_tree(session, meeting.owner_id),
                contacts=repository.load_contact_roster(session, meeting.owner_id),
            )
            session.commit()
            return run_input

    def _extract(
        self, run_input: _RunInput
    ) -> tuple[ContextResolution | None, str, list[ExtractedTask]]:
        if self.resolver is None or self.extractor is None:
            raise RuntimeError(NOT_CONFIGURED_ERROR)

        resolution = self.resolver.resolve(run_input.transcript, run_input.goals)
        label = context_label(resolution, run_input.goals)
        logger.info("Extracting tasks with context %r", label)
        tasks = self.extractor.extract(
            run_input.transcript,
            label,
            run_input.contacts,
            today=self.clock().date(),
        )
        return resolution, label, tasks

    def _persist(
        self,
        meeting_id: str,
        run_id: str,
        resolution: ContextResolution | None,
        label: str,
        tasks: list[ExtractedTask],
    ) -> None:
        with self.session_factory() as session:
            try:
                meeting = session.get(Meeting, meeting_id)
                run = session.get(ExtractionRun, run_id)
                if meeting is None or run is None:
                    logger.warning("Meeting %s was deleted during extraction", meeting_id)
                    return

                removed = repository.delete_ai_tasks(session, meeting_id, keep_run_id=run_id)
                repository.create_ai_tasks(session, meeting, run, tasks, resolution)
                repository.mark_processed(
                    session, meeting, run, resolution, label, len(tasks), self.clock()
                )
                session.commit()
            except Exception:
                session.rollback()
                raise

        logger.info(
            "Meeting %s processed: %d tasks saved, %d earlier AI tasks replaced",
            meeting_id,
            len(tasks),
            removed,
        )

    def _record_failure(self, meeting_id: str, run_id: str | None, error: str) -> None:
        with self.session_factory() as session:
            repository.mark_failed(session, meeting_id, run_id, error, self.clock())
            session.commit()
