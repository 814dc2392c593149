"""
Video Job Poller - one cancellable asyncio task per watched job.

Each task polls the provider until the job reaches a terminal state
(completed with a URL, or failed). A failed poll is logged and the same job
is polled again on the next tick. Leaving the context manager cancels
every task still running.
"""

import asyncio
from collections.abc import Awaitable, Callable
from types import TracebackType

from structlog import get_logger

from jovitools.config import settings
from jovitools.models.domain import VideoJobStatus
from jovitools.observability.metrics import metrics

logger = get_logger(__name__)

FetchStatus = Callable[[str], Awaitable[VideoJobStatus]]
OnUpdate = Callable[[VideoJobStatus], Awaitable[None]]


class VideoJobPoller:
    """Polls video jobs by id until they finish."""

    def __init__(
        self,
        fetch_status: FetchStatus,
        interval: float | None = None,
        on_update: OnUpdate | None = None,
    ) -> None:
        self.fetch_status = fetch_status
        self.interval = interval if interval is not None else settings.video_poll_interval_seconds
        self.on_update = on_update
        self._tasks: dict[str, asyncio.Task[VideoJobStatus]] = {}

    def watch(self, job_id: str) -> asyncio.Task[VideoJobStatus]:
        """Start polling a job. Watching a job twice returns the running task."""
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(self._poll(job_id), name=f"video-job-{job_id}")
        self._tasks[job_id] = task
        metrics.video_jobs_watched.inc()
        task.add_done_callback(lambda t, job_id=job_id: self._forget(job_id, t))
        return task

    def is_watching(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    @property
    def active_jobs(self) -> list[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def wait(self, job_id: str, timeout: float | None = None) -> VideoJobStatus:
        """
        Watch a job and wait for its terminal status.

        Raises:
            TimeoutError: The job did not finish in time (polling is cancelled)
        """
        task = self.watch(job_id)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            self.cancel(job_id)
            raise

    def cancel(self, job_id: str) -> bool:
        """Stop polling a job. Returns False when it was not being watched."""
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("video_job_watch_cancelled", job_id=job_id)
        return True

    async def cancel_all(self) -> None:
        """Cancel every running task and wait for them to unwind."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def __aenter__(self) -> "VideoJobPoller":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cancel_all()

    async def _poll(self, job_id: str) -> VideoJobStatus:
        attempts = 0
        while True:
            attempts += 1
            try:
                status = await self.fetch_status(job_id)
            except Exception as exc:
                # Transient failures are retried silently on the next tick
                logger.warning(
                    "video_job_poll_failed", job_id=job_id, attempt=attempts, error=str(exc)
                )
            else:
                if self.on_update is not None:
                    await self.on_update(status)
                if status.is_terminal:
                    logger.info(
                        "video_job_finished",
                        job_id=job_id,
                        state=status.state.value,
                        polls=attempts,
                    )
                    return status
            await asyncio.sleep(self.interval)

    def _forget(self, job_id: str, task: asyncio.Task[VideoJobStatus]) -> None:
        metrics.video_jobs_watched.dec()
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
