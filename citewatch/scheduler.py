"""Monitoring scheduler built on APScheduler with a SQLAlchemy job store."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

MONITORING_JOB_ID = "citation_monitoring"


def parse_cron(cron: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field cron expression (min hour day month weekday)."""
    parts = cron.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Cron expression must have 5 fields, got {len(parts)}: {cron!r}")
    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone,
    )


class MonitoringScheduler:
    """Wrapper around APScheduler for the recurring monitoring batch.

    Jobs run with ``max_instances=1`` so a slow batch is never overlapped
    by its own next firing inside this process; the batch lease covers
    other processes.

    Usage::

        sched = MonitoringScheduler(job_store_url=None)
        sched.add_job(MONITORING_JOB_ID, run_monitoring_once, cron="0 */6 * * *")
        sched.start()
    """

    def __init__(
        self,
        job_store_url: Optional[str] = "sqlite:///data/scheduler_jobs.db",
        timezone: str = "UTC",
        blocking: bool = False,
    ):
        if job_store_url and job_store_url.startswith("sqlite:///"):
            db_path = job_store_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        jobstore = SQLAlchemyJobStore(url=job_store_url) if job_store_url else MemoryJobStore()
        scheduler_cls = BlockingScheduler if blocking else BackgroundScheduler
        self._scheduler = scheduler_cls(
            jobstores={"default": jobstore},
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 3600,
            },
            timezone=timezone,
        )
        self._timezone = timezone
        self._running = False
        logger.info(
            "MonitoringScheduler initialized (store=%s, tz=%s, blocking=%s)",
            job_store_url or "memory", timezone, blocking,
        )

    @property
    def is_running(self) -> bool:
        """Whether the scheduler is currently active."""
        return self._running

    def start(self) -> None:
        """Start the scheduler.  Blocks when built with ``blocking=True``."""
        if self._running:
            logger.warning("Scheduler is already running.")
            return
        self._running = True
        logger.info("Scheduler started.")
        try:
            self._scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            self._running = False
            logger.info("Scheduler interrupted.")

    def stop(self, wait: bool = True) -> None:
        """Shut down the scheduler."""
        if not self._running:
            return
        self._scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Scheduler stopped.")

    def add_job(
        self,
        job_id: str,
        func: Callable,
        cron: str,
        args: Optional[tuple] = None,
        kwargs: Optional[dict[str, Any]] = None,
        replace_existing: bool = True,
    ) -> None:
        """Add or replace a cron-triggered job."""
        self._scheduler.add_job(
            func,
            trigger=parse_cron(cron, self._timezone),
            id=job_id,
            args=args or (),
            kwargs=kwargs or {},
            replace_existing=replace_existing,
        )
        logger.info("Job added: %s [%s]", job_id, cron)

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job by ID.

        Returns:
            True if the job was found and removed, False otherwise.
        """
        try:
            self._scheduler.remove_job(job_id)
            logger.info("Job removed: %s", job_id)
            return True
        except Exception:
            logger.warning("Job not found: %s", job_id)
            return False

    def list_jobs(self) -> list[dict[str, Any]]:
        """List all scheduled jobs with their details."""
        result = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            result.append({
                "id": job.id,
                "name": job.name,
                "trigger": str(job.trigger),
                "next_run_time": next_run.isoformat() if next_run else None,
            })
        return result
