"""Bounded fire-and-forget queue for webhook calls, dispatch requests and acks."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from src.services.diagnostics import log_diagnostic
from src.services.task_store import TaskStore
from src.utils.config import get_outbox_max_size
from src.utils.logging import correlation_context, get_correlation_id, get_structured_logger

logger = get_structured_logger(__name__)

JobFactory = Callable[[], Awaitable[Any]]
CLOSE_POLL_SECONDS = 0.5


class Outbox:
    """
    Single-worker job queue.

    Each job is attempted once. A failure is logged once and recorded as a
    diagnostic; it is never retried and never reaches the submitter. When
    the queue is full the job is dropped with a warning.
    """

    def __init__(self, store: Optional[TaskStore] = None, max_size: Optional[int] = None):
        self.store = store
        self.max_size = max_size or get_outbox_max_size()
        self.processed = 0
        self.failed = 0
        self.dropped = 0
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closing = False

    def _ensure_worker(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_size)
        if self._worker is None or self._worker.done():
            self._closing = False
            self._worker = asyncio.get_running_loop().create_task(self._run())

    def submit(self, kind: str, factory: JobFactory, **metadata: Any) -> bool:
        """Queue ``factory()`` for execution; returns False if the job was dropped."""
        self._ensure_worker()
        job = (kind, factory, metadata, get_correlation_id())
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Outbox full, dropping job", job_kind=kind, outbox_size=self.max_size, **metadata)
            return False
        return True

    async def _run(self) -> None:
        while not self._closing:
            kind, factory, metadata, correlation_id = await self._queue.get()
            try:
                with correlation_context(correlation_id):
                    await factory()
                self.processed += 1
            except Exception as e:
                self.failed += 1
                logger.error(
                    "Outbox job failed",
                    job_kind=kind,
                    error=str(e),
                    error_type=type(e).__name__,
                    **metadata
                )
                await log_diagnostic(self.store, kind, "failed", str(e), metadata)
            finally:
                self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def drain(self) -> None:
        """Wait until every queued job has been attempted."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Stop the worker. A job that swallows the cancel still ends the loop once it returns."""
        self._closing = True
        worker, self._worker = self._worker, None
        while worker is not None and not worker.done():
            worker.cancel()
            await asyncio.wait({worker}, timeout=CLOSE_POLL_SECONDS)
