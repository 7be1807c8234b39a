"""In-process background job runners.

`JobSlot` holds at most one running job; submitting while it is occupied
raises `SlotOccupiedError`. `BackgroundJobs` keeps fire-and-forget tasks
referenced until they finish.
"""

import asyncio
from typing import Any, Awaitable, Callable
from uuid import uuid4

from autodeploy.core.exceptions import SlotOccupiedError
from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)

JobFunc = Callable[..., Awaitable[Any]]


async def _delayed(delay: float, func: JobFunc, *args: Any) -> Any:
    if delay > 0:
        await asyncio.sleep(delay)
    return await func(*args)


class Job:
    """Handle on a scheduled background job."""

    def __init__(self, name: str, task: asyncio.Task):
        self.id = uuid4().hex
        self.name = name
        self.task = task

    def done(self) -> bool:
        return self.task.done()

    async def wait(self) -> Any:
        """Wait for the job to finish and return its result."""
        return await asyncio.shield(self.task)


class JobSlot:
    """A single-slot job runner."""

    def __init__(self, name: str):
        self.name = name
        self._job: Job | None = None

    @property
    def busy(self) -> bool:
        return self._job is not None and not self._job.done()

    def submit(self, func: JobFunc, *args: Any, delay: float = 0.0) -> Job:
        """Schedule `func(*args)` after `delay` seconds.

        Must be called from inside a running event loop.
        """
        if self.busy:
            raise SlotOccupiedError(self.name)

        task = asyncio.get_running_loop().create_task(
            _delayed(delay, func, *args), name=f"{self.name}-job"
        )
        job = Job(self.name, task)
        self._job = job
        task.add_done_callback(self._release)
        return job

    def discard(self, job: Job) -> None:
        """Cancel `job` and free the slot right away."""
        job.task.cancel()
        if self._job is job:
            self._job = None

    def _release(self, task: asyncio.Task) -> None:
        if self._job is not None and self._job.task is task:
            self._job = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "jobs.slot.job_crashed",
                slot=self.name,
                error=str(task.exception()),
            )


class BackgroundJobs:
    """Keeps references to fire-and-forget tasks until they complete."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, name: str, func: JobFunc, *args: Any, delay: float = 0.0) -> Job:
        task = asyncio.get_running_loop().create_task(
            _delayed(delay, func, *args), name=name
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return Job(name, task)

    async def drain(self) -> None:
        """Wait for every outstanding task."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
