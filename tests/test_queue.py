"""Tests for the bounded extraction queue."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from src.extraction.queue import ExtractionQueue, ExtractionQueueFull


class Recorder:
    """Thread-safe handler that notes every call and any overlap per meeting."""

    def __init__(self, delay: float = 0.0, fail_on: set[str] | None = None) -> None:
        self.delay = delay
        self.fail_on = fail_on or set()
        self.calls: list[str] = []
        self.overlaps: list[str] = []
        self.started = threading.Event()
        self._active: dict[str, int] = {}
        self._lock = threading.Lock()

    def __call__(self, meeting_id: str) -> None:
        with self._lock:
            self.calls.append(meeting_id)
            self._active[meeting_id] = self._active.get(meeting_id, 0) + 1
            if self._active[meeting_id] > 1:
                self.overlaps.append(meeting_id)
        self.started.set()
        try:
            time.sleep(self.delay)
            if meeting_id in self.fail_on:
                raise RuntimeError(f"boom on {meeting_id}")
        finally:
            with self._lock:
                self._active[meeting_id] -= 1


def test_submit_requires_start() -> None:
    queue = ExtractionQueue(Recorder())
    with pytest.raises(RuntimeError):
        queue.submit("m1")


def test_needs_a_worker() -> None:
    with pytest.raises(ValueError):
        ExtractionQueue(Recorder(), workers=0)


def test_runs_every_submitted_meeting() -> None:
    handler = Recorder()

    async def scenario() -> None:
        queue = ExtractionQueue(handler, workers=2)
        await queue.start()
        for meeting_id in ("m1", "m2", "m3"):
            assert queue.submit(meeting_id) is True
        await queue.join()
        await queue.stop()
        assert not queue.running

    asyncio.run(scenario())
    assert sorted(handler.calls) == ["m1", "m2", "m3"]


def test_waiting_meeting_is_not_queued_twice() -> None:
    handler = Recorder()

    async def scenario() -> None:
        queue = ExtractionQueue(handler, workers=1)
        await queue.start()
        assert queue.submit("m1") is True
        assert queue.submit("m1") is False
        await queue.join()
        await queue.stop()

    asyncio.run(scenario())
    assert handler.calls == ["m1"]


def test_runs_for_one_meeting_never_overlap() -> None:
    handler = Recorder(delay=0.1)

    async def scenario() -> None:
        queue = ExtractionQueue(handler, workers=4)
        await queue.start()
        queue.submit("m1")
        # once the first run is in progress, m1 may be queued again
        await asyncio.to_thread(handler.started.wait, 5)
        assert queue.submit("m1") is True
        queue.submit("m2")
        await queue.join()
        await queue.stop()

    asyncio.run(scenario())
    assert handler.calls.count("m1") == 2
    assert handler.overlaps == []


def test_full_queue_raises() -> None:
    handler = Recorder()

    async def scenario() -> None:
        queue = ExtractionQueue(handler, workers=1, maxsize=1)
        await queue.start()
        queue.submit("m1")
        assert queue.full()
        with pytest.raises(ExtractionQueueFull):
            queue.submit("m2")
        await queue.join()
        await queue.stop()

    asyncio.run(scenario())
    assert handler.calls == ["m1"]


def test_handler_errors_do_not_kill_the_worker() -> None:
    handler = Recorder(fail_on={"bad"})

    async def scenario() -> None:
        queue = ExtractionQueue(handler, workers=1)
        await queue.start()
        queue.submit("bad")
        queue.submit("good")
        await queue.join()
        await queue.stop()

    asyncio.run(scenario())
    assert handler.calls == ["bad", "good"]
