"""
SLA Scheduling
===============

APScheduler wrapper driving the periodic SLA evaluation sweep.

Sweeps never overlap (max_instances=1) and missed runs collapse into one
(coalesce). A failing sweep is logged through the scheduler's job-error
event; the next interval runs as usual.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from psa_engine.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "sla_evaluation"


class SLAScheduler:
    """
    Runs the SLA sweep on a fixed interval.

    Args:
        interval_seconds: Seconds between sweeps
        run_immediately: Also run one sweep right after start()
    """

    def __init__(self, interval_seconds: int = 60, run_immediately: bool = False):
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning("Previous SLA sweep still running, skipping this run", extra={"job_id": event.job_id})
            return
        logger.error(
            "SLA sweep failed",
            extra={"job_id": event.job_id, "error": repr(event.exception)}
        )

    async def start(self, sweep: Callable[[], Awaitable]) -> None:
        """Schedule `sweep` and start the scheduler on the running event loop."""
        if self.is_running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)

        job_options = {}
        if self.run_immediately:
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            sweep,
            "interval",
            seconds=self.interval_seconds,
            id=SWEEP_JOB_ID,
            name="SLA evaluation sweep",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **job_options
        )
        self._scheduler.start()

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds, "run_immediately": self.run_immediately}
        )

    def next_run_time(self) -> Optional[datetime]:
        """When the next sweep is due, or None when not scheduled."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(SWEEP_JOB_ID)
        return job.next_run_time if job else None

    async def stop(self) -> None:
        """Stop scheduling sweeps. A sweep already running is not awaited."""
        if self._scheduler is None:
            return

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("SLA scheduler stopped")
