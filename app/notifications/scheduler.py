# ============================================================================
# Priority Transfers Notify - Reminder Scheduler (APScheduler-based)
# ============================================================================
# One-shot reminder jobs on a BackgroundScheduler. Every job uses a
# DateTrigger, so it fires exactly once and APScheduler disposes of it.
# ============================================================================

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from .config import get_config, utc_now

logger = logging.getLogger("notifications.scheduler")


def compute_fire_time(pickup_at: datetime, lead_hours: float) -> datetime:
    """Reminder fire time: lead_hours before pickup."""
    if lead_hours < 0:
        raise ValueError(f"lead_hours must be non-negative, got {lead_hours}")
    return pickup_at - timedelta(hours=lead_hours)


def new_job_id(booking_id: str) -> str:
    return f"reminder_{booking_id}_{uuid.uuid4().hex[:12]}"


class ReminderScheduler:
    """
    Thin wrapper around an APScheduler BackgroundScheduler.

    Callbacks run on the scheduler's worker threads. Listeners registered
    with on_missed() are told about jobs APScheduler skipped because they
    were past their misfire grace time.
    """

    def __init__(self, misfire_grace_time: Optional[int] = None):
        grace = misfire_grace_time
        if grace is None:
            grace = get_config("misfire_grace_seconds", 300)

        self._scheduler = BackgroundScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": grace,
            },
        )
        self._missed_listeners: List[Callable[[str], None]] = []

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    # ------------------------------------------------------------------
    # Event listeners
    # ------------------------------------------------------------------

    def _on_job_executed(self, event):
        logger.info(f"Job {event.job_id} executed")

    def _on_job_error(self, event):
        logger.error(f"Job {event.job_id} failed: {event.exception}")

    def _on_job_missed(self, event):
        logger.warning(f"Job {event.job_id} missed its run time {event.scheduled_run_time}")
        for listener in self._missed_listeners:
            try:
                listener(event.job_id)
            except Exception as e:
                logger.error(f"Missed-job listener failed for {event.job_id}: {e}")

    def on_missed(self, listener: Callable[[str], None]):
        self._missed_listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._scheduler.running:
            return
        self._scheduler.start()
        logger.info("Reminder scheduler started")

    def shutdown(self, wait: bool = False):
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=wait)
        logger.info("Reminder scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def schedule_at(
        self,
        fire_at: datetime,
        on_fire: Callable,
        job_id: str,
        args: Optional[list] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Schedule on_fire(*args) to run once at fire_at. Returns the job id."""
        if fire_at.tzinfo is None:
            raise ValueError("fire_at must be timezone-aware")

        current = now or utc_now()
        if fire_at <= current:
            raise ValueError(f"Refusing to schedule job {job_id} in the past ({fire_at.isoformat()})")

        self._scheduler.add_job(
            on_fire,
            trigger=DateTrigger(run_date=fire_at, timezone=timezone.utc),
            id=job_id,
            args=args or [],
            replace_existing=True,
        )
        logger.info(f"Added job {job_id} for {fire_at.isoformat()}")
        return job_id

    def cancel(self, job_id: str) -> bool:
        """Remove a pending job. Returns False if it had already fired or gone."""
        try:
            self._scheduler.remove_job(job_id)
            return True
        except JobLookupError:
            return False

    def get_job(self, job_id: str):
        return self._scheduler.get_job(job_id)

    def pending_jobs(self) -> List[Dict]:
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "job_id": job.id,
                "next_run_iso": next_run.isoformat() if next_run else None,
            })
        jobs.sort(key=lambda j: j["next_run_iso"] or "")
        return jobs
