"""APScheduler-based background job service running on the shard's event loop."""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Background job scheduler for a single shard process.

    Uses APScheduler's asyncio scheduler so every job runs as a coroutine
    on the shard's event loop. Jobs hold bound methods of live objects,
    so they are kept in memory rather than persisted.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        """
        Initialize the scheduler service.

        Args:
            timezone: Scheduler timezone
        """
        self._timezone = timezone
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def scheduler(self) -> AsyncIOScheduler:
        """Get or create the scheduler instance."""
        if self._scheduler is None:
            self._scheduler = self._create_scheduler()
        return self._scheduler

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        job_defaults = {
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Prevent overlapping runs
            "misfire_grace_time": 30,
        }

        scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults=job_defaults,
            timezone=self._timezone,
        )

        logger.debug(f"Scheduler configured, timezone={self._timezone}")
        return scheduler

    def start(self) -> None:
        """Start the scheduler. Must be called from within the running event loop."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.debug("Scheduler is already running")

    async def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        The asyncio scheduler may finish stopping on the next loop
        iteration; this yields once so it is stopped on return.

        Args:
            wait: Wait for running jobs to complete
        """
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            await asyncio.sleep(0)
            logger.info("Scheduler shutdown complete")

    def add_job(
        self,
        job_id: str,
        func: Callable[..., Awaitable[Any]],
        minutes: float = 0,
        seconds: float = 0,
        args: tuple[Any, ...] | None = None,
        kwargs: dict[str, Any] | None = None,
        run_immediately: bool = False,
    ) -> None:
        """
        Add an interval-based job to the scheduler.

        The first run happens one interval after the job is added, so each
        job keeps its own phase.

        Args:
            job_id: Unique identifier for the job
            func: Coroutine function to execute
            minutes: Minutes between runs
            seconds: Seconds between runs (added to minutes)
            args: Positional arguments for the function
            kwargs: Keyword arguments for the function
            run_immediately: Run the job immediately after adding
        """
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Job '{job_id}' must be a coroutine function")
        if minutes <= 0 and seconds <= 0:
            raise ValueError(f"Job '{job_id}' needs a positive interval")

        trigger = IntervalTrigger(minutes=minutes, seconds=seconds, timezone=self._timezone)

        self.scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            args=args or (),
            kwargs=kwargs or {},
            replace_existing=True,
        )

        logger.debug(f"Job '{job_id}' added with {minutes}m{seconds}s interval")

        if run_immediately:
            self.run_job_now(job_id)

    def remove_job(self, job_id: str) -> bool:
        """
        Remove a job from the scheduler.

        Args:
            job_id: Unique identifier of the job to remove

        Returns:
            True if job was removed, False if not found
        """
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.debug(f"Job '{job_id}' removed")
        return True

    def remove_jobs(self, prefix: str) -> int:
        """
        Remove every job whose id starts with ``prefix``.

        Returns:
            Number of jobs removed
        """
        removed = 0
        for job in self.scheduler.get_jobs():
            if job.id.startswith(prefix):
                self.scheduler.remove_job(job.id)
                removed += 1
        if removed:
            logger.debug(f"Removed {removed} '{prefix}*' jobs")
        return removed

    def run_job_now(self, job_id: str) -> None:
        """
        Trigger immediate execution of a job.

        Args:
            job_id: Unique identifier of the job
        """
        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now(self.scheduler.timezone))
            logger.debug(f"Job '{job_id}' triggered for immediate execution")
        else:
            logger.warning(f"Job '{job_id}' not found")

    def has_job(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def get_job_status(self, job_id: str) -> dict[str, Any] | None:
        """
        Get the status of a job.

        Args:
            job_id: Unique identifier of the job

        Returns:
            Job status dict or None if not found
        """
        job = self.scheduler.get_job(job_id)
        if job:
            return {
                "id": job.id,
                "name": job.name,
                "next_run_time": getattr(job, "next_run_time", None),
                "pending": job.pending,
            }
        return None

    def list_jobs(self) -> list[dict[str, Any]]:
        """
        List all scheduled jobs.

        Returns:
            List of job status dicts
        """
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": getattr(job, "next_run_time", None),
                "pending": job.pending,
            }
            for job in self.scheduler.get_jobs()
        ]

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._scheduler is not None and self._scheduler.running
