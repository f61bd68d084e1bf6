"""Shared fixtures: a throwaway SQLite database per test and a scripted LLM gateway."""

from __future__ import annotations

import itertools
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session, sessionmaker

from src.db.database import create_db_engine, create_session_factory, init_db
from src.db.models import Category, Contact, Goal, Meeting

OWNER_ID = "user-1"


class FakeGateway:
    """LLM gateway that replays scripted responses and records every call.

    A response that is an exception instance is raised instead of returned.
    """

    def __init__(self, *responses: str | BaseException) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str, float]] = []

    def complete_json(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        self.calls.append((system_prompt, user_prompt, temperature))
        if not self.responses:
            raise AssertionError("FakeGateway ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def make_clock(
    start: datetime = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc),
) -> Callable[[], datetime]:
    """A clock that advances one second per call, starting on a Wednesday."""
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def fake_gateway() -> type[FakeGateway]:
    return FakeGateway


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return make_clock()


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker[Session], None, None]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seed(session_factory):
    """Insert a meeting, a small goal tree and a contact roster for OWNER_ID.

    Returns a dict of the created ids.
    """

    def _seed(transcript: str = "Alice, please send the Q3 report by Friday.") -> dict[str, str]:
        with session_factory() as session:
            yearly = Goal(owner_id=OWNER_ID, title="Grow revenue 2026", type="YEARLY")
            session.add(yearly)
            session.flush()
            quarterly = Goal(
                owner_id=OWNER_ID, title="Close Q4 deals", type="QUARTERLY", parent_id=yearly.id
            )
            session.add(quarterly)
            session.flush()
            reporting = Category(owner_id=OWNER_ID, name="Reporting", goal_id=yearly.id)
            alice = Contact(owner_id=OWNER_ID, name="Alice", role="Analyst")
            bob = Contact(owner_id=OWNER_ID, name="Bob", role="Engineer")
            meeting = Meeting(owner_id=OWNER_ID, title="Weekly sync", transcript=transcript)
            session.add_all([reporting, alice, bob, meeting])
            session.commit()
            return {
                "meeting": meeting.id,
                "yearly": yearly.id,
                "quarterly": quarterly.id,
                "category": reporting.id,
                "alice": alice.id,
                "bob": bob.id,
            }

    return _seed
