"""Prompt builders for the two extraction passes.

Pass 1 (context) classifies a transcript under one goal or category.
Pass 2 (tasks) extracts assignable work items under a fixed rules contract.
Both ask for a single JSON object; the shapes are checked in
:mod:`src.extraction.validation`.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date

from src.extraction.models import ContactContext, GoalContext

MAX_TITLE_WORDS = 8


CONTEXT_SYSTEM_PROMPT = """\
You are an intelligent assistant helping to organize meeting notes.
Your task is to analyze the meeting transcript and identify which organizational \
Goal or Category it best relates to.

Here is the hierarchy of Goals and Categories:
{hierarchy}

Rules:
- Return a JSON object with EITHER "goalId" OR "categoryId", never both.
- Prefer a category over its goal when the category is specific enough.
- Only use ids that appear in the hierarchy above.
- If nothing in the hierarchy is relevant, return {{"goalId": null, "categoryId": null}}.

Example: {{"categoryId": "123-abc"}}\
"""


TASK_SYSTEM_PROMPT = """\
You are an expert project manager.
Your task is to extract actionable tasks from the meeting transcript.
Context: This meeting is related to "{context_label}".

Here are the available team members (Contacts) you can assign tasks to:
{roster}

Rules:
1. INCLUSION. Only emit a task for discussion that has a clear owner and a concrete \
next step: an explicit ask, a volunteered commitment ("I'll ..."), or an action the \
group agreed on. Do NOT emit tasks for pure discussion, work that is already \
completed, or vague intentions ("we should think about ...").
2. GRANULARITY. Merge repeated mentions of the same action into one task. Split one \
action into several tasks only when distinct people are each given distinct sub-parts.
3. ASSIGNEE. Match the person responsible to the Contacts above by name or role.
   - On a confident match set "assigneeId" to the contact id and "assigneeName" to \
the contact's name exactly as listed.
   - If the match is not confident or the person is not in the list, set \
"assigneeId" to null and "assigneeName" to the name or role as spoken.
   - If no owner can be identified, set both to null.
   - NEVER invent a contact id.
4. PRIORITY. Use "high" only for explicit urgency ("urgent", "ASAP", "blocker", \
"critical"). Use "low" only for explicit de-prioritization ("nice to have", "later", \
"not urgent"). Otherwise use "medium". Never invent urgency.
5. DEADLINE. Set "deadline" (YYYY-MM-DD) ONLY when a specific date or timeframe \
(e.g. "by Friday", "next week") is EXPLICITLY tied to that specific task.
   - Calculate relative dates assuming today is {today} ({weekday}).
   - Vague timing ("soon", "eventually", "at some point") means null.
   - Do NOT infer a deadline from another task.
   - If no deadline is mentioned, set it to null.
6. TITLE. Start with an action verb, at most {max_title_words} words, no filler \
("Need to", "Make sure to").
7. EVIDENCE. Put the transcript sentence(s) the task comes from in \
"sourceExcerpts", quoted verbatim.

Return a single JSON object with a "tasks" array. Return {{"tasks": []}} when there \
are no actionable tasks.
Example:
{{
  "tasks": [
    {{
      "title": "Email client the revised quote",
      "description": "Send the revised quote to the client with the new pricing.",
      "assigneeId": "123",
      "assigneeName": "Alice Smith",
      "priority": "high",
      "deadline": "2024-12-01",
      "sourceExcerpts": ["Alice, can you email the client the revised quote by Friday? It's urgent."]
    }}
  ]
}}\
"""


def _goal_hierarchy(goals: Sequence[GoalContext]) -> list[dict[str, object]]:
    return [
        {
            "id": g.id,
            "title": g.title,
            "type": g.type,
            "parentId": g.parent_id,
            "categories": [{"id": c.id, "name": c.name} for c in g.categories],
        }
        for g in goals
    ]


def build_context_prompts(transcript: str, goals: Sequence[GoalContext]) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for the context pass."""
    system_prompt = CONTEXT_SYSTEM_PROMPT.format(
        hierarchy=json.dumps(_goal_hierarchy(goals), indent=2),
    )
    return system_prompt, f"Meeting Transcript:\n{transcript}"


def build_task_prompts(
    transcript: str,
    context_label: str,
    contacts: Sequence[ContactContext],
    today: date,
) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for the task pass."""
    roster = [{"id": c.id, "name": c.name, "role": c.role} for c in contacts]
    system_prompt = TASK_SYSTEM_PROMPT.format(
        context_label=context_label,
        roster=json.dumps(roster, indent=2),
        today=today.isoformat(),
        weekday=today.strftime("%A"),
        max_title_words=MAX_TITLE_WORDS,
    )
    return system_prompt, f"Meeting Transcript:\n{transcript}"
