"""Background job scheduling."""

from feedrelay.scheduler.service import SchedulerService

__all__ = ["SchedulerService"]
