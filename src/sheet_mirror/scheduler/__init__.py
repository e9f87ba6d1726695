"""Scheduler package for periodic sync runs."""

from .job_scheduler import MirrorScheduler, SchedulerError, MIRROR_JOB_ID, RECORDS_JOB_ID

__all__ = [
    "MirrorScheduler",
    "SchedulerError",
    "MIRROR_JOB_ID",
    "RECORDS_JOB_ID"
]
