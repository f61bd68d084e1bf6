"""Pass 1: classify a transcript under at most one goal or category."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.extraction.models import ContextResolution, GoalContext
from src.extraction.prompts import build_context_prompts
from src.extraction.validation import ResponseSchemaError, parse_context_response
from src.llm.gateway import LLMGateway, LLMGatewayError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 8000


def truncate_transcript(transcript: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Cut ``transcript`` to ``max_chars``, preferring the last line break before the limit.

    Trailing content is dropped; the context pass only needs enough of the
    meeting to recognise what it is about.
    """
    if len(transcript) <= max_chars:
        return transcript
    head = transcript[:max_chars]
    cut = head.rfind("\n")
    if cut > max_chars // 2:
        head = head[:cut]
    logger.info(
        "Transcript truncated from %d to %d characters for context resolution",
        len(transcript),
        len(head),
    )
    return head


class ContextResolver:
    """Pick the goal or category that best scopes a meeting.

    ``resolve`` never raises for LLM trouble: transport errors, timeouts,
    empty or malformed responses all come back as ``None``, exactly like a
    transcript that matches nothing in the tree.
    """

    def __init__(
        self,
        gateway: LLMGateway,
        temperature: float = 0.1,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self.gateway = gateway
        self.temperature = temperature
        self.max_chars = max_chars

    def resolve(
        self, transcript: str, goals: Sequence[GoalContext]
    ) -> ContextResolution | None:
        if not goals:
            return None

        system_prompt, user_prompt = build_context_prompts(
            truncate_transcript(transcript, self.max_chars), goals
        )
        try:
            raw = self.gateway.complete_json(system_prompt, user_prompt, self.temperature)
            return parse_context_response(raw, goals)
        except (LLMGatewayError, TimeoutError, ResponseSchemaError) as exc:
            logger.warning("Context resolution failed, continuing without context: %s", exc)
            return None
