"""Pass 2: extract assignable tasks from a meeting transcript."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from src.extraction.models import ContactContext, ExtractedTask
from src.extraction.prompts import build_task_prompts
from src.extraction.validation import ResponseSchemaError, parse_task_response
from src.llm.gateway import LLMGateway, LLMGatewayError

logger = logging.getLogger(__name__)

GENERAL_CONTEXT = "General"


class TaskExtractor:
    """Turn a transcript into :class:`ExtractedTask` objects.

    Soft-failure policy: if the LLM cannot be reached or its answer is not a
    well-formed ``{"tasks": [...]}`` object, the result is an empty list.
    """

    def __init__(self, gateway: LLMGateway, temperature: float = 0.2) -> None:
        self.gateway = gateway
        self.temperature = temperature

    def extract(
        self,
        transcript: str,
        context_label: str,
        contacts: Sequence[ContactContext],
        today: date | None = None,
    ) -> list[ExtractedTask]:
        """Extract tasks from ``transcript``.

        Args:
            transcript: The raw meeting transcript text.
            context_label: Goal title or category name scoping the meeting.
            contacts: Roster the extractor may assign tasks to.
            today: Date relative deadlines are resolved against (default: today).

        Returns:
            Checked tasks; assignee ids are guaranteed to come from ``contacts``.
        """
        today = today or date.today()
        system_prompt, user_prompt = build_task_prompts(
            transcript, context_label or GENERAL_CONTEXT, contacts, today
        )
        try:
            raw = self.gateway.complete_json(system_prompt, user_prompt, self.temperature)
            tasks = parse_task_response(raw, contacts, transcript)
        except (LLMGatewayError, TimeoutError, ResponseSchemaError) as exc:
            logger.warning("Task extraction failed, returning no tasks: %s", exc)
            return []

        logger.info("Extracted %d tasks with context %r", len(tasks), context_label)
        return tasks
