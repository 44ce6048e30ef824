"""Tests for the scheduler service."""

import asyncio

import pytest

from feedrelay.scheduler import SchedulerService


async def noop() -> None:
    pass


class TestSchedulerService:
    """Tests for SchedulerService."""

    def test_add_and_list_jobs(self) -> None:
        """Jobs can be added before the scheduler starts."""
        service = SchedulerService()
        service.add_job("limiter-reset:c1", noop, minutes=10)
        service.add_job("usage-flush", noop, seconds=10)

        assert service.has_job("usage-flush")
        assert {job["id"] for job in service.list_jobs()} == {"limiter-reset:c1", "usage-flush"}
        assert service.get_job_status("usage-flush")["name"] == "usage-flush"
        assert service.get_job_status("missing") is None
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_add_job_replaces_existing(self) -> None:
        service = SchedulerService()
        service.start()
        try:
            service.add_job("job", noop, seconds=5)
            service.add_job("job", noop, seconds=10)
            assert len(service.list_jobs()) == 1
        finally:
            await service.shutdown()

    def test_rejects_plain_functions(self) -> None:
        """Only coroutine functions can run on the shard's event loop."""
        service = SchedulerService()
        with pytest.raises(TypeError):
            service.add_job("job", lambda: None, seconds=5)

    def test_rejects_empty_interval(self) -> None:
        service = SchedulerService()
        with pytest.raises(ValueError):
            service.add_job("job", noop)

    def test_remove_job(self) -> None:
        service = SchedulerService()
        service.add_job("job", noop, seconds=5)
        assert service.remove_job("job") is True
        assert service.remove_job("job") is False

    def test_remove_jobs_by_prefix(self) -> None:
        service = SchedulerService()
        service.add_job("limiter-reset:c1", noop, minutes=10)
        service.add_job("limiter-reset:c2", noop, minutes=10)
        service.add_job("usage-flush", noop, seconds=10)

        assert service.remove_jobs("limiter-reset:") == 2
        assert [job["id"] for job in service.list_jobs()] == ["usage-flush"]

    @pytest.mark.asyncio
    async def test_job_runs_on_event_loop(self) -> None:
        """A started scheduler runs jobs as coroutines on the running loop."""
        ran = asyncio.Event()

        async def job() -> None:
            ran.set()

        service = SchedulerService()
        service.start()
        service.start()  # second start is a no-op
        try:
            assert service.is_running
            service.add_job("job", job, minutes=10, run_immediately=True)
            await asyncio.wait_for(ran.wait(), timeout=5)
        finally:
            await service.shutdown()
        assert not service.is_running
