"""Tests for the mirror scheduler."""

from unittest.mock import AsyncMock, Mock

import pytest

from sheet_mirror.api_clients.base import SourceUnavailable
from sheet_mirror.scheduler import MIRROR_JOB_ID, RECORDS_JOB_ID, MirrorScheduler, SchedulerError


def make_orchestrator(result="No changes detected in the sheet.", error=None):
    orchestrator = Mock()
    orchestrator.run = AsyncMock(return_value=result, side_effect=error)
    return orchestrator


class TestMirrorScheduler:
    """Test MirrorScheduler job handling."""

    def test_rejects_non_positive_interval(self):
        with pytest.raises(SchedulerError):
            MirrorScheduler(make_orchestrator(), interval_minutes=0)

    @pytest.mark.asyncio
    async def test_start_schedules_non_overlapping_jobs(self):
        record_sync = Mock()
        record_sync.push = AsyncMock(return_value=3)
        scheduler = MirrorScheduler(make_orchestrator(), record_sync=record_sync, interval_minutes=5)

        await scheduler.start(run_immediately=False)
        try:
            assert scheduler.running
            statuses = scheduler.get_job_statuses()
            assert set(statuses) == {MIRROR_JOB_ID, RECORDS_JOB_ID}
            assert all(status["is_scheduled"] for status in statuses.values())

            job = scheduler.scheduler.get_job(MIRROR_JOB_ID)
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.trigger.interval.total_seconds() == 300
        finally:
            await scheduler.stop(wait=False)

        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_records_job_only_when_enabled(self):
        scheduler = MirrorScheduler(make_orchestrator(), interval_minutes=1)

        await scheduler.start(run_immediately=False)
        try:
            assert set(scheduler.get_job_statuses()) == {MIRROR_JOB_ID}
        finally:
            await scheduler.stop(wait=False)

    @pytest.mark.asyncio
    async def test_trigger_now_records_success(self):
        orchestrator = make_orchestrator(result="Folders updated for 1 changed row(s): 1 uploaded, 0 replaced, 0 skipped, 0 failed.")
        scheduler = MirrorScheduler(orchestrator)

        message = await scheduler.trigger_now()

        assert "1 uploaded" in message
        stats = scheduler.job_stats[MIRROR_JOB_ID]
        assert stats["run_count"] == 1
        assert stats["success_count"] == 1
        assert stats["last_result"] == message

    @pytest.mark.asyncio
    async def test_trigger_now_raises_on_failure(self):
        scheduler = MirrorScheduler(make_orchestrator(error=SourceUnavailable("quota exceeded")))

        with pytest.raises(SchedulerError):
            await scheduler.trigger_now()

        assert scheduler.job_stats[MIRROR_JOB_ID]["error_count"] == 1
        assert scheduler.job_stats[MIRROR_JOB_ID]["last_error"] == "quota exceeded"

    @pytest.mark.asyncio
    async def test_scheduled_tick_failure_is_contained(self):
        scheduler = MirrorScheduler(make_orchestrator(error=SourceUnavailable("quota exceeded")))

        assert await scheduler._run_mirror() is None
        assert await scheduler._run_mirror() is None

        stats = scheduler.get_scheduler_stats()
        assert stats["total_runs"] == 2
        assert stats["total_errors"] == 2

    @pytest.mark.asyncio
    async def test_records_tick(self):
        record_sync = Mock()
        record_sync.push = AsyncMock(return_value=4)
        scheduler = MirrorScheduler(make_orchestrator(), record_sync=record_sync)

        assert await scheduler._run_records() == 4
        assert scheduler.job_stats[RECORDS_JOB_ID]["last_result"] == 4
