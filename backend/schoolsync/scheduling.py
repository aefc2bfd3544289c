"""Session-scoped job scheduling on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers import SchedulerNotRunningError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


def create_scheduler(loop: Optional[asyncio.AbstractEventLoop] = None) -> AsyncIOScheduler:
    """Build a scheduler bound to ``loop`` (the running loop by default).

    Job functions must be coroutines so that they execute on the loop thread
    instead of the default thread pool.
    """
    return AsyncIOScheduler(
        event_loop=loop or asyncio.get_running_loop(),
        timezone=timezone.utc,
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
    )


def add_interval_job(scheduler: AsyncIOScheduler, job_id: str, func: JobFunc, seconds: float) -> None:
    scheduler.add_job(func, trigger="interval", seconds=seconds, id=job_id, replace_existing=True)
    logger.debug("Scheduled %s every %.1fs", job_id, seconds)


def add_delayed_job(scheduler: AsyncIOScheduler, job_id: str, func: JobFunc, seconds: float) -> None:
    run_date = datetime.now(timezone.utc) + timedelta(seconds=seconds)
    scheduler.add_job(func, trigger="date", run_date=run_date, id=job_id, replace_existing=True)


def remove_job(scheduler: Optional[AsyncIOScheduler], job_id: str) -> bool:
    """Remove ``job_id`` if it is still scheduled; a missing job is not an error."""
    if scheduler is None:
        return False
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return False
    return True


def shutdown_scheduler(scheduler: Optional[AsyncIOScheduler]) -> bool:
    """Stop ``scheduler`` without waiting for running jobs; repeated calls are no-ops."""
    if scheduler is None:
        return False
    try:
        scheduler.shutdown(wait=False)
    except SchedulerNotRunningError:
        return False
    return True


__all__ = [
    "JobFunc",
    "add_delayed_job",
    "add_interval_job",
    "create_scheduler",
    "remove_job",
    "shutdown_scheduler",
]
