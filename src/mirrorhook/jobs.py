"""In-process job queue that runs blocking work units off the event loop.

Work units are plain no-argument callables (mirror sync + commit mail). They
block on git and the commit mailer, so each worker task hands its unit to a
thread pool; the aiohttp request loop only ever enqueues.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from .exceptions import JobQueueFullError

logger = logging.getLogger(__name__)

WorkUnit = Callable[[], None]


@dataclass
class Job:
    """A queued work unit with a label for logging."""

    name: str
    work: WorkUnit


class JobQueue:
    """Fire-and-forget queue drained by a fixed number of workers.

    Failures raised by a work unit are logged with their traceback and
    counted; they never reach the code that submitted the unit.

    Example:
        >>> queue = JobQueue(workers=2)
        >>> await queue.start()
        >>> queue.submit(lambda: repository.process(*change), name="acme/widgets")
        >>> await queue.stop()
    """

    def __init__(self, workers: int = 4, queue_size: int = 1000):
        """Initialize the queue.

        Args:
            workers: Work units run concurrently
            queue_size: Maximum number of waiting work units
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.queue_size = queue_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def qsize(self) -> int:
        return self._queue.qsize()

    def submit(self, work: WorkUnit, name: str = "job") -> None:
        """Queue ``work`` for later execution.

        Args:
            work: No-argument callable run in a worker thread
            name: Label used in log records

        Raises:
            JobQueueFullError: If ``queue_size`` jobs are already waiting
        """
        try:
            self._queue.put_nowait(Job(name=name, work=work))
        except asyncio.QueueFull as exc:
            logger.error(
                f"Job queue full, dropping {name}",
                extra={"job": name, "queue_size": self._queue.qsize()},
            )
            raise JobQueueFullError(f"job queue is full ({self.queue_size})") from exc
        logger.debug(f"Job queued: {name}", extra={"job": name})

    async def start(self) -> None:
        """Start the worker tasks and their thread pool.

        Must be awaited inside the event loop that will call :meth:`submit`.
        Calling it again while running does nothing.
        """
        if self._tasks:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="mirrorhook-worker"
        )
        self._tasks = [
            asyncio.create_task(self._process_jobs(index)) for index in range(self.workers)
        ]
        logger.info(f"Job queue started with {self.workers} workers")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def stop(self, timeout: float = 30.0) -> None:
        """Drain pending jobs (up to ``timeout`` seconds) and stop workers."""
        if self._tasks and not self._queue.empty():
            logger.info(f"Draining job queue ({self._queue.qsize()} jobs remaining)...")
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Job queue drain timeout, some jobs may be lost")

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info("Job queue stopped")

    async def _process_jobs(self, worker_id: int) -> None:
        loop = asyncio.get_running_loop()
        while True:
            job = await self._queue.get()
            try:
                await loop.run_in_executor(self._executor, job.work)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Job {job.name} failed: {e}",
                    extra={"job": job.name, "worker": worker_id},
                    exc_info=True,
                )
            else:
                self.processed += 1
                logger.info(
                    f"Job {job.name} completed",
                    extra={"job": job.name, "worker": worker_id},
                )
            finally:
                self._queue.task_done()


__all__ = ["Job", "JobQueue", "WorkUnit"]
