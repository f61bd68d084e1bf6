"""Tests for the task pass: prompts, response checks and the extractor (no external APIs)."""

from __future__ import annotations

import json
from datetime import date

import pytest

from src.extraction.extractor import GENERAL_CONTEXT, TaskExtractor
from src.extraction.models import ContactContext, ExtractedTask, TaskPriority
from src.extraction.prompts import build_task_prompts
from src.extraction.validation import (
    ResponseSchemaError,
    decode_json,
    has_temporal_cue,
    merge_duplicate_tasks,
    normalize_title,
    parse_task_response,
)
from src.llm.gateway import LLMGatewayError

ROSTER = [
    ContactContext(id="c1", name="Alice", role="Analyst"),
    ContactContext(id="c2", name="Bob", role="Engineer"),
]
WEDNESDAY = date(2026, 10, 14)


def _tasks(*items: dict) -> str:
    return json.dumps({"tasks": list(items)})


# ---------------------------------------------------------------------------
# Extractor end to end (scripted gateway)
# ---------------------------------------------------------------------------


class TestTaskExtractor:
    def test_single_clear_request(self, fake_gateway) -> None:
        """One ask with a named owner and a weekday deadline becomes one task."""
        transcript = "Alice, please send the Q3 report by Friday."
        gateway = fake_gateway(
            _tasks(
                {
                    "title": "Please send the Q3 report",
                    "description": "Send the Q3 report.",
                    "assigneeId": "c1",
                    "assigneeName": "Alice",
                    "priority": "medium",
                    "deadline": "2026-10-16",
                    "sourceExcerpts": [transcript],
                }
            )
        )

        tasks = TaskExtractor(gateway).extract(transcript, GENERAL_CONTEXT, ROSTER, today=WEDNESDAY)

        assert len(tasks) == 1
        task = tasks[0]
        assert task.assignee_id == "c1"
        assert task.assignee_name == "Alice"
        assert task.priority is TaskPriority.MEDIUM
        assert task.deadline == date(2026, 10, 16)
        assert task.title == "Send the Q3 report"

    def test_prompt_carries_today_and_roster(self, fake_gateway) -> None:
        gateway = fake_gateway(_tasks())

        TaskExtractor(gateway, temperature=0.2).extract(
            "Some meeting.", "Close Q4 deals", ROSTER, today=WEDNESDAY
        )

        system_prompt, user_prompt, temperature = gateway.calls[0]
        assert "2026-10-14 (Wednesday)" in system_prompt
        assert '"Close Q4 deals"' in system_prompt
        assert '"id": "c1"' in system_prompt
        assert user_prompt == "Meeting Transcript:\nSome meeting."
        assert temperature == 0.2

    def test_discussion_without_decisions_yields_nothing(self, fake_gateway) -> None:
        gateway = fake_gateway(_tasks())
        tasks = TaskExtractor(gateway).extract(
            "We discussed the roadmap but made no decisions.", GENERAL_CONTEXT, ROSTER
        )
        assert tasks == []

    def test_gateway_error_yields_empty_list(self, fake_gateway) -> None:
        gateway = fake_gateway(LLMGatewayError("connection reset"))
        assert TaskExtractor(gateway).extract("x", GENERAL_CONTEXT, ROSTER) == []

    def test_timeout_yields_empty_list(self, fake_gateway) -> None:
        gateway = fake_gateway(TimeoutError("read timed out"))
        assert TaskExtractor(gateway).extract("x", GENERAL_CONTEXT, ROSTER) == []

    def test_non_json_yields_empty_list(self, fake_gateway) -> None:
        gateway = fake_gateway("Sure! Here are the tasks: ...")
        assert TaskExtractor(gateway).extract("x", GENERAL_CONTEXT, ROSTER) == []

    def test_blank_context_label_falls_back_to_general(self, fake_gateway) -> None:
        gateway = fake_gateway(_tasks())
        TaskExtractor(gateway).extract("x", "", ROSTER, today=WEDNESDAY)
        assert '"General"' in gateway.calls[0][0]


# ---------------------------------------------------------------------------
# Response checks
# ---------------------------------------------------------------------------


class TestParseTaskResponse:
    def test_unknown_assignee_id_is_cleared(self) -> None:
        raw = _tasks(
            {
                "title": "Book the venue",
                "assigneeId": "c99",
                "assigneeName": "Carol",
            }
        )
        [task] = parse_task_response(raw, ROSTER, "Carol will book the venue.")
        assert task.assignee_id is None
        assert task.assignee_name == "Carol"

    def test_roster_match_uses_canonical_name(self) -> None:
        raw = _tasks({"title": "Fix the login bug", "assigneeId": "c2", "assigneeName": "bobby"})
        [task] = parse_task_response(raw, ROSTER, "Bobby, fix the login bug.")
        assert task.assignee_id == "c2"
        assert task.assignee_name == "Bob"

    def test_deadline_without_timeframe_in_excerpt_is_cleared(self) -> None:
        transcript = "Bob will fix the login bug soon. The demo is on Friday."
        raw = _tasks(
            {
                "title": "Fix the login bug",
                "assigneeId": "c2",
                "deadline": "2026-10-16",
                "sourceExcerpts": ["Bob will fix the login bug soon."],
            }
        )
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline is None

    def test_deadline_kept_when_excerpt_names_timeframe(self) -> None:
        raw = _tasks(
            {
                "title": "Draft the proposal",
                "deadline": "2026-10-23",
                "sourceExcerpts": ["Alice will draft the proposal by next week."],
            }
        )
        transcript = "Good. Alice will draft the proposal by next week. Anything else?"
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline == date(2026, 10, 23)

    def test_excerpt_matching_ignores_case_and_whitespace(self) -> None:
        raw = _tasks(
            {
                "title": "Draft the proposal",
                "deadline": "2026-10-23",
                "sourceExcerpts": ["alice will  draft the proposal\nby NEXT week"],
            }
        )
        transcript = "Alice will draft the proposal by next week."
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline == date(2026, 10, 23)

    def test_deadline_without_excerpts_is_cleared(self) -> None:
        """A sibling's timeframe elsewhere in the transcript is not evidence."""
        transcript = "Alice, send the Q3 report by Friday. Bob will update the wiki."
        raw = _tasks({"title": "Update the wiki", "assigneeId": "c2", "deadline": "2026-10-16"})
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline is None

    def test_excerpt_not_in_transcript_is_not_evidence(self) -> None:
        transcript = "Bob will update the wiki at some point."
        raw = _tasks(
            {
                "title": "Update the wiki",
                "assigneeId": "c2",
                "deadline": "2026-10-16",
                "sourceExcerpts": ["Bob will update the wiki by Friday."],
            }
        )
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline is None
        assert task.source_excerpts == ["Bob will update the wiki by Friday."]

    def test_one_genuine_excerpt_is_enough(self) -> None:
        transcript = "Bob owns the wiki. He will update it tomorrow."
        raw = _tasks(
            {
                "title": "Update the wiki",
                "deadline": "2026-10-15",
                "sourceExcerpts": ["Bob owns the wiki.", "He will update it tomorrow."],
            }
        )
        [task] = parse_task_response(raw, ROSTER, transcript)
        assert task.deadline == date(2026, 10, 15)

    def test_unparseable_deadline_becomes_none(self) -> None:
        raw = _tasks(
            {"title": "Ship it", "deadline": "next Friday", "sourceExcerpts": ["by Friday"]}
        )
        [task] = parse_task_response(raw, ROSTER, "Ship it by Friday.")
        assert task.deadline is None

    def test_iso_timestamp_deadline_keeps_date(self) -> None:
        raw = _tasks(
            {
                "title": "Ship it",
                "deadline": "2026-10-16T17:00:00Z",
                "sourceExcerpts": ["Ship it by Friday."],
            }
        )
        [task] = parse_task_response(raw, ROSTER, "Ship it by Friday.")
        assert task.deadline == date(2026, 10, 16)

    def test_priority_is_case_insensitive_and_defaults_to_medium(self) -> None:
        raw = _tasks(
            {"title": "Patch the server", "priority": "HIGH"},
            {"title": "Tidy the backlog", "priority": None},
            {"title": "Plan the offsite"},
        )
        tasks = parse_task_response(raw, ROSTER, "")
        assert [t.priority for t in tasks] == [
            TaskPriority.HIGH,
            TaskPriority.MEDIUM,
            TaskPriority.MEDIUM,
        ]

    def test_invalid_items_are_dropped_individually(self) -> None:
        raw = _tasks(
            {"title": "Valid task"},
            {"title": "Bad priority", "priority": "whenever"},
            {"assigneeId": "c1"},
            "not an object",
        )
        tasks = parse_task_response(raw, ROSTER, "")
        assert [t.title for t in tasks] == ["Valid task"]

    def test_missing_title_is_derived_from_description(self) -> None:
        raw = _tasks({"description": "We need to migrate the billing database to Postgres 16"})
        [task] = parse_task_response(raw, ROSTER, "")
        assert task.title == "Migrate the billing database to Postgres 16"
        assert task.description == "We need to migrate the billing database to Postgres 16"

    def test_item_with_only_filler_title_is_dropped(self) -> None:
        raw = _tasks({"title": "Please."}, {"description": "..."}, {"title": "Renew the domain"})
        tasks = parse_task_response(raw, ROSTER, "")
        assert [t.title for t in tasks] == ["Renew the domain"]

    def test_duplicates_are_merged(self) -> None:
        raw = _tasks(
            {"title": "Send the Q3 report", "assigneeId": "c1", "sourceExcerpts": ["first"]},
            {
                "title": "send the Q3 report",
                "assigneeId": "c1",
                "description": "Send the Q3 report to finance",
                "sourceExcerpts": ["second"],
            },
            {"title": "Send the Q3 report", "assigneeId": "c2"},
        )
        tasks = parse_task_response(raw, ROSTER, "")
        assert len(tasks) == 2
        assert tasks[0].source_excerpts == ["first", "second"]
        assert tasks[0].description == "Send the Q3 report to finance"

    @pytest.mark.parametrize(
        "raw",
        ['{"items": []}', '[{"title": "x"}]', '{"tasks": "none"}', "", "null"],
    )
    def test_wrong_envelope_raises(self, raw: str) -> None:
        with pytest.raises(ResponseSchemaError):
            parse_task_response(raw, ROSTER, "")

    def test_code_fence_is_tolerated(self) -> None:
        raw = "```json\n" + _tasks({"title": "Renew the domain"}) + "\n```"
        assert [t.title for t in parse_task_response(raw, ROSTER, "")] == ["Renew the domain"]


class TestHelpers:
    def test_normalize_title_caps_words(self) -> None:
        title = normalize_title(
            "Make sure to review every open pull request in the payments service today"
        )
        assert title == "Review every open pull request in the payments"
        assert len(title.split()) == 8

    def test_normalize_title_strips_punctuation(self) -> None:
        assert normalize_title("let's book the room.") == "Book the room"

    @pytest.mark.parametrize("text", ["Please.", "we need to", "  ...  ", ""])
    def test_normalize_title_of_pure_filler_is_empty(self, text: str) -> None:
        assert normalize_title(text) == ""

    @pytest.mark.parametrize(
        "text",
        [
            "by Friday",
            "next week",
            "before March 3rd",
            "due 2026-11-01",
            "in two weeks",
            "end of the quarter",
            "by EOD",
        ],
    )
    def test_temporal_cues(self, text: str) -> None:
        assert has_temporal_cue(text)

    @pytest.mark.parametrize("text", ["soon", "eventually", "at some point", "ASAP"])
    def test_vague_timing_is_not_a_cue(self, text: str) -> None:
        assert not has_temporal_cue(text)

    def test_decode_json_rejects_garbage(self) -> None:
        with pytest.raises(ResponseSchemaError):
            decode_json("{not json")

    def test_merge_keeps_first_deadline(self) -> None:
        first = ExtractedTask(title="Ship", deadline=None)
        second = ExtractedTask(title="Ship", deadline=WEDNESDAY)
        [merged] = merge_duplicate_tasks([first, second])
        assert merged.deadline == WEDNESDAY

    def test_build_task_prompts_lists_roster(self) -> None:
        system_prompt, _ = build_task_prompts("t", "General", ROSTER, WEDNESDAY)
        assert '"name": "Bob"' in system_prompt
        assert "at most 8 words" in system_prompt
