"""Task queue contract and the in-process asyncio worker pool."""

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Awaitable, Callable
import itertools
import logging

from app.core.config import Settings, get_settings
from app.models.job import ProcessingPriority

logger = logging.getLogger(__name__)

JobHandler = Callable[[str], Awaitable[None]]


class TaskQueue(ABC):
    """Abstract scheduler for job runs.

    Delivery is at-least-once with no ordering guarantee across jobs; the
    handler must tolerate being called twice for the same job.
    """

    @abstractmethod
    async def submit(
        self, job_id: str, priority: ProcessingPriority = ProcessingPriority.NORMAL
    ) -> None:
        """Schedule a run for ``job_id``."""

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...


class InProcessTaskQueue(TaskQueue):
    """Run jobs on a pool of asyncio workers in this process.

    Higher priorities are dispatched first, FIFO within a priority. A job
    id that is already waiting in the queue is not enqueued twice. Each
    worker runs one job at a time; failures raised by the handler are
    logged and the worker moves on.
    """

    def __init__(
        self,
        handler: JobHandler,
        worker_count: int | None = None,
        settings: Settings | None = None,
    ):
        """Initialize queue.

        Args:
            handler: Coroutine function called with each job id
            worker_count: Number of workers (uses settings.effective_worker_count if not provided)
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if worker_count is None:
            if settings is None:
                settings = get_settings()
            worker_count = settings.effective_worker_count
        self._handler = handler
        self._worker_count = max(1, worker_count)
        self._queue: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._pending: set[str] = set()
        self._workers: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(
        self, job_id: str, priority: ProcessingPriority = ProcessingPriority.NORMAL
    ) -> None:
        if job_id in self._pending:
            logger.debug("Job %s already queued, ignoring duplicate submit", job_id)
            return
        self._pending.add(job_id)
        await self._queue.put((-priority.rank, next(self._sequence), job_id))
        logger.info("Queued job %s (priority=%s)", job_id, priority.value)

    async def start(self) -> None:
        if self._workers:
            return
        logger.info("Starting task queue with %d worker(s)", self._worker_count)
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"job-worker-{index}")
            for index in range(self._worker_count)
        ]

    async def stop(self) -> None:
        if not self._workers:
            return
        logger.info("Stopping task queue (%d job(s) still pending)", len(self._pending))
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Task queue stopped")

    async def join(self) -> None:
        """Wait until every submitted job has been handled."""
        await self._queue.join()

    async def _worker_loop(self, index: int) -> None:
        while True:
            _, _, job_id = await self._queue.get()
            self._pending.discard(job_id)
            try:
                await self._handler(job_id)
            except Exception as e:
                logger.error("Worker %d: job %s failed: %s", index, job_id, e)
            finally:
                self._queue.task_done()
