"""
Triage Dispatcher
=================

Background execution of triage jobs.

Ticket creation hands the ticket ID to the dispatcher and returns at once.
A bounded asyncio queue feeds a fixed pool of worker tasks, so producers
wait (or are refused) when the backlog is full, and tests can `join()` to
wait for every queued run deterministically.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from helpdesk.core import DispatcherFullException
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

TriageHandler = Callable[[str], Awaitable[Any]]


class TriageDispatcher:
    """
    Bounded queue plus worker pool for triage runs.

    Worker failures are logged and counted; a failing job never stops its
    worker.
    """

    def __init__(
        self,
        handler: TriageHandler,
        workers: int = 2,
        queue_size: int = 100
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._handler = handler
        self._worker_count = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self.processed = 0
        self.failed = 0

    async def start(self) -> None:
        """Spawn the worker tasks."""
        if self._running:
            logger.warning("Triage dispatcher already running")
            return

        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"triage-worker-{i}")
            for i in range(self._worker_count)
        ]
        self._running = True

        logger.info(
            "Triage dispatcher started",
            extra={"workers": self._worker_count, "queue_size": self._queue.maxsize}
        )

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the workers.

        Args:
            drain: Wait for queued jobs to finish before cancelling workers
        """
        if not self._running:
            return

        if drain:
            await self._queue.join()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False

        logger.info(
            "Triage dispatcher stopped",
            extra={"processed": self.processed, "failed": self.failed}
        )

    async def submit(self, ticket_id: str) -> None:
        """Queue a triage run, waiting for space when the queue is full."""
        self._ensure_running()
        await self._queue.put(ticket_id)
        logger.debug("Triage queued", extra={"ticket_id": ticket_id, "pending": self.pending})

    def submit_nowait(self, ticket_id: str) -> None:
        """
        Queue a triage run without waiting.

        Raises:
            DispatcherFullException: If the queue is at capacity
        """
        self._ensure_running()
        try:
            self._queue.put_nowait(ticket_id)
        except asyncio.QueueFull:
            raise DispatcherFullException(ticket_id, self._queue.maxsize)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _ensure_running(self) -> None:
        if not self._running:
            raise RuntimeError("Triage dispatcher not started. Call start() first.")

    async def _worker(self, index: int) -> None:
        while True:
            ticket_id: Optional[str] = await self._queue.get()
            try:
                await self._handler(ticket_id)
                self.processed += 1
            except Exception as e:
                self.failed += 1
                logger.error(
                    "Triage job failed",
                    extra={
                        "ticket_id": ticket_id,
                        "worker": index,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
            finally:
                self._queue.task_done()
