"""
Background Jobs - scheduled maintenance of the click log
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from cinelink.exceptions import JobAlreadyRunning
from cinelink.jobs.rollup import RollupResult, run_daily_rollup
from cinelink.utils.config import get_settings

logger = logging.getLogger(__name__)

ROLLUP_JOB_ID = "daily_click_rollup"


class JobScheduler:
    """Owns the background scheduler and the daily rollup job."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        retention_years: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.hour = settings.ROLLUP_HOUR if hour is None else hour
        self.minute = settings.ROLLUP_MINUTE if minute is None else minute
        self.retention_years = (
            settings.CLICK_RETENTION_YEARS if retention_years is None else retention_years
        )
        self.clock = clock
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.last_result: Optional[RollupResult] = None
        self._jobs_registered = False
        self._run_lock = threading.Lock()

    def start(self):
        """Register jobs and start the scheduler thread."""
        self._register_jobs()
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Job scheduler started")

    def _register_jobs(self):
        """Register all scheduled jobs"""
        if self._jobs_registered:
            return

        # Retention cleanup + daily summary, one run at a time
        self.scheduler.add_job(
            func=self._run_scheduled,
            trigger=CronTrigger(hour=self.hour, minute=self.minute, timezone="UTC"),
            id=ROLLUP_JOB_ID,
            name="Daily click rollup",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        self._jobs_registered = True
        logger.info(f"Background jobs registered (rollup at {self.hour:02d}:{self.minute:02d} UTC)")

    def run_now(self) -> RollupResult:
        """
        Run the rollup synchronously on the calling thread.

        Raises JobAlreadyRunning while another run, scheduled or manual, is
        still in progress.
        """
        if not self._run_lock.acquire(blocking=False):
            raise JobAlreadyRunning("Daily click rollup is already running")
        try:
            result = run_daily_rollup(
                self.session_factory,
                now=self.clock(),
                retention_years=self.retention_years,
            )
            self.last_result = result
            return result
        finally:
            self._run_lock.release()

    def _run_scheduled(self):
        try:
            self.run_now()
        except JobAlreadyRunning:
            logger.warning("Skipping scheduled rollup: a manual run is still in progress")

    def shutdown(self, wait: bool = True):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Job scheduler shutdown")
