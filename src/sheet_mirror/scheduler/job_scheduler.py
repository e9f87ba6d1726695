"""Job scheduler for the periodic mirror and record sync runs."""

from typing import Any, Awaitable, Callable, Dict, Optional
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from ..core.orchestrator import SyncOrchestrator
from ..core.record_sync import RecordSync
from ..utils.logging import get_logger, log_async_execution_time


MIRROR_JOB_ID = "mirror_sync"
RECORDS_JOB_ID = "record_sync"


class SchedulerError(Exception):
    """Raised when scheduler operations fail."""
    pass


class MirrorScheduler:
    """Runs the mirror, and optionally the record sync, on a fixed interval."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        record_sync: Optional[RecordSync] = None,
        interval_minutes: float = 5
    ):
        """Initialize mirror scheduler.

        Args:
            orchestrator: Orchestrator run by the mirror job
            record_sync: Record sync run by the second job, if enabled
            interval_minutes: Minutes between ticks of each job
        """
        if interval_minutes <= 0:
            raise SchedulerError(f"Interval must be positive, got {interval_minutes}")

        self.orchestrator = orchestrator
        self.record_sync = record_sync
        self.interval_minutes = interval_minutes
        self.logger = get_logger(self.__class__.__name__)

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # Combine multiple pending executions
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 60
            }
        )

        self.job_stats: Dict[str, Dict[str, Any]] = {}

        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @log_async_execution_time
    async def start(self, run_immediately: bool = True):
        """Start the scheduler and add the configured jobs.

        Args:
            run_immediately: Fire the first tick now instead of after one interval
        """
        if self.scheduler.running:
            self.logger.warning("Scheduler is already running")
            return

        try:
            self._add_job(MIRROR_JOB_ID, "Mirror sheet files", self._run_mirror, run_immediately)
            if self.record_sync is not None:
                self._add_job(RECORDS_JOB_ID, "Push sheet records", self._run_records, run_immediately)

            self.scheduler.start()
            self.logger.info(
                "Mirror scheduler started",
                interval_minutes=self.interval_minutes,
                jobs=list(self.job_stats)
            )

        except Exception as e:
            self.logger.error("Failed to start scheduler", error=str(e))
            raise SchedulerError(f"Failed to start scheduler: {e}") from e

    async def stop(self, wait: bool = True):
        """Stop the scheduler.

        Args:
            wait: Whether to wait for running jobs to complete
        """
        if not self.scheduler.running:
            self.logger.warning("Scheduler is not running")
            return

        try:
            self.scheduler.shutdown(wait=wait)
            self.logger.info("Mirror scheduler stopped")
        except Exception as e:
            self.logger.error("Error stopping scheduler", error=str(e))

    async def trigger_now(self) -> str:
        """Run the mirror job immediately and return its summary message.

        Raises:
            SchedulerError: If the run failed
        """
        self.logger.info("Manually triggering mirror run")
        try:
            return await self._execute(MIRROR_JOB_ID, self.orchestrator.run)
        except Exception as e:
            raise SchedulerError(f"Mirror run failed: {e}") from e

    def get_job_statuses(self) -> Dict[str, Dict[str, Any]]:
        """Status information for every job, keyed by job id."""
        statuses = {}
        for job_id, stats in self.job_stats.items():
            status = stats.copy()
            job = self.scheduler.get_job(job_id) if self.scheduler.running else None
            status["next_run"] = job.next_run_time if job else None
            status["is_scheduled"] = job is not None
            statuses[job_id] = status
        return statuses

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """Overall scheduler statistics."""
        return {
            "is_running": self.scheduler.running,
            "interval_minutes": self.interval_minutes,
            "total_jobs": len(self.job_stats),
            "total_runs": sum(stats["run_count"] for stats in self.job_stats.values()),
            "total_successes": sum(stats["success_count"] for stats in self.job_stats.values()),
            "total_errors": sum(stats["error_count"] for stats in self.job_stats.values()),
        }

    def _add_job(self, job_id: str, name: str, func: Callable, run_immediately: bool):
        trigger_args = {}
        if run_immediately:
            trigger_args["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=job_id,
            name=name,
            replace_existing=True,
            **trigger_args
        )
        self.job_stats[job_id] = {
            "name": name,
            "created_at": datetime.now(timezone.utc),
            "last_run": None,
            "run_count": 0,
            "success_count": 0,
            "error_count": 0,
            "last_result": None,
            "last_error": None
        }

    async def _run_mirror(self) -> Optional[str]:
        try:
            return await self._execute(MIRROR_JOB_ID, self.orchestrator.run)
        except Exception:
            # Already logged and counted; the next tick retries
            return None

    async def _run_records(self) -> Optional[int]:
        try:
            return await self._execute(RECORDS_JOB_ID, self.record_sync.push)
        except Exception:
            return None

    async def _execute(self, job_id: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """Run one job body and record its outcome."""
        stats = self.job_stats.setdefault(job_id, {
            "name": job_id,
            "created_at": datetime.now(timezone.utc),
            "last_run": None,
            "run_count": 0,
            "success_count": 0,
            "error_count": 0,
            "last_result": None,
            "last_error": None
        })
        stats["last_run"] = datetime.now(timezone.utc)
        stats["run_count"] += 1

        try:
            result = await func()
        except Exception as e:
            stats["error_count"] += 1
            stats["last_error"] = str(e)
            self.logger.error(
                "Scheduled job failed",
                job_id=job_id,
                error_type=type(e).__name__,
                error=str(e)
            )
            raise

        stats["success_count"] += 1
        stats["last_result"] = result
        stats["last_error"] = None
        self.logger.info("Scheduled job completed", job_id=job_id, result=result)
        return result

    def _job_error(self, event):
        """Handle job error event."""
        self.logger.error(
            "Scheduler reported job error",
            job_id=event.job_id,
            error=str(event.exception)
        )

    def _job_missed(self, event):
        """Handle job missed event."""
        self.logger.warning(
            "Scheduled job missed",
            job_id=event.job_id,
            scheduled_run_time=event.scheduled_run_time
        )
