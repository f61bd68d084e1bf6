"""Bounded background queue for extraction runs.

A fixed number of worker tasks on the application's event loop pull meeting
ids off an ``asyncio.Queue`` and hand them to a synchronous handler in a
worker thread. Runs for the same meeting are serialised by a per-meeting
lock, and a meeting that is already waiting in the queue is not queued twice.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ExtractionQueueFull(Exception):
    """The queue is at capacity; the caller should try again later."""


class ExtractionQueue:
    def __init__(
        self,
        handler: Callable[[str], None],
        workers: int = 4,
        maxsize: int = 100,
    ) -> None:
        if workers < 1:
            raise ValueError("ExtractionQueue needs at least one worker")
        self._handler = handler
        self._num_workers = workers
        self._maxsize = maxsize
        self._queue: asyncio.Queue[str] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._waiting: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"extraction-worker-{i}")
            for i in range(self._num_workers)
        ]
        logger.info("Extraction queue started with %d workers", self._num_workers)

    async def stop(self, drain: bool = False) -> None:
        """Stop the workers, optionally after the queue has been worked off."""
        if drain and self._queue is not None:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Extraction queue stopped")

    def full(self) -> bool:
        return self._queue is not None and self._queue.full()

    def submit(self, meeting_id: str) -> bool:
        """Queue an extraction run for ``meeting_id``.

        Must be called from the event loop thread.

        Returns:
            False if the meeting was already waiting in the queue.

        Raises:
            ExtractionQueueFull: The queue is at capacity.
            RuntimeError: The queue has not been started.
        """
        if self._queue is None or not self.running:
            raise RuntimeError("ExtractionQueue is not running")
        if meeting_id in self._waiting:
            logger.info("Meeting %s is already queued for extraction", meeting_id)
            return False
        try:
            self._queue.put_nowait(meeting_id)
        except asyncio.QueueFull as exc:
            raise ExtractionQueueFull(
                f"Extraction queue is full ({self._maxsize} meetings waiting)"
            ) from exc
        self._waiting.add(meeting_id)
        return True

    async def join(self) -> None:
        """Wait until every queued run has finished."""
        if self._queue is not None:
            await self._queue.join()

    def _lock_for(self, meeting_id: str) -> asyncio.Lock:
        self._lock_refs[meeting_id] = self._lock_refs.get(meeting_id, 0) + 1
        return self._locks.setdefault(meeting_id, asyncio.Lock())

    def _release_lock(self, meeting_id: str) -> None:
        self._lock_refs[meeting_id] -= 1
        if self._lock_refs[meeting_id] == 0:
            del self._lock_refs[meeting_id]
            del self._locks[meeting_id]

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        while True:
            meeting_id = await self._queue.get()
            self._waiting.discard(meeting_id)
            lock = self._lock_for(meeting_id)
            try:
                async with lock:
                    await asyncio.to_thread(self._handler, meeting_id)
            except Exception:
                logger.exception("Extraction worker %d failed on meeting %s", index, meeting_id)
            finally:
                self._release_lock(meeting_id)
                self._queue.task_done()
