"""
Processing Job Manager - starts book processing in the background.

Keeps an in-memory registry of running jobs so a book is never processed
twice at the same time. Each job is bounded by a global concurrency limit
and a wall-clock timeout.
"""
import asyncio
from typing import Dict, List, Optional

from bookshelf.core.config import settings
from bookshelf.core.exceptions import BookAlreadyProcessingError
from bookshelf.services.processing_service import BookProcessor
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)


class ProcessingJobManager:
    """Fire-and-forget dispatcher for BookProcessor runs."""

    def __init__(
            self,
            processor: BookProcessor,
            max_concurrent: Optional[int] = None,
            timeout_seconds: Optional[float] = None
    ):
        self.processor = processor
        self.max_concurrent = max_concurrent or settings.MAX_CONCURRENT_JOBS
        self.timeout_seconds = timeout_seconds or settings.PROCESSING_TIMEOUT_SECONDS
        self._jobs: Dict[str, asyncio.Task] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None

        logger.info(
            f"ProcessingJobManager initialized: "
            f"max_concurrent={self.max_concurrent}, timeout={self.timeout_seconds}s"
        )

    def trigger(self, book_id: str) -> asyncio.Task:
        """
        Schedule processing for a book and return immediately.

        Must be called from a running event loop.

        Raises:
            BookAlreadyProcessingError: a job for this book is still running
        """
        if self.is_processing(book_id):
            raise BookAlreadyProcessingError(book_id)

        task = asyncio.create_task(self._run(book_id), name=f"process-book-{book_id}")
        self._jobs[book_id] = task
        task.add_done_callback(lambda finished: self._forget(book_id, finished))

        logger.info(f"[Jobs] Processing scheduled for book {book_id}")
        return task

    def is_processing(self, book_id: str) -> bool:
        task = self._jobs.get(book_id)
        return task is not None and not task.done()

    @property
    def active_jobs(self) -> List[str]:
        return [book_id for book_id, task in self._jobs.items() if not task.done()]

    async def wait(self, book_id: str) -> None:
        """Wait for a book's job to finish (no-op when none is running)."""
        task = self._jobs.get(book_id)
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        """
        Cancel running jobs, used on application shutdown.

        Each cancelled job marks its book ERROR before it finishes.
        """
        tasks = [task for task in self._jobs.values() if not task.done()]
        if not tasks:
            return

        logger.warning(f"[Jobs] Cancelling {len(tasks)} running job(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, book_id: str) -> None:
        # Created lazily so it binds to the loop the jobs actually run on
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

        async with self._semaphore:
            # Returns only after the attempt's worker threads have finished
            await self.processor.process(book_id, timeout_seconds=self.timeout_seconds)

    def _forget(self, book_id: str, task: asyncio.Task) -> None:
        if self._jobs.get(book_id) is task:
            del self._jobs[book_id]

        if task.cancelled():
            logger.warning(f"[Jobs] Processing cancelled for book {book_id}")
        elif task.exception() is not None:
            logger.error(f"[Jobs] Job for book {book_id} crashed: {task.exception()}")
        else:
            logger.debug(f"[Jobs] Job finished for book {book_id}")
