"""
Background scheduler for the daily popularity recompute.

Uses APScheduler to run the job in the background. One PopularityScheduler is
created per process (see bookrack.main) and started/stopped from the FastAPI
startup and shutdown events.
"""
import enum
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from bookrack.core.config import settings
from bookrack.database import SessionLocal
from bookrack.services.popularity_service import recompute_scores

logger = logging.getLogger(__name__)

STARTUP_JOB_ID = "popularity_recompute_startup"
DAILY_JOB_ID = "popularity_recompute_daily"


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"


def seconds_until_next_midnight_utc(now: Optional[datetime] = None) -> float:
    """Seconds from now until the next 00:00:00 UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    next_midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (next_midnight - now).total_seconds()


def daily_midnight_trigger() -> CronTrigger:
    """Fires at the next midnight UTC and every 24 hours after that."""
    return CronTrigger(hour=0, minute=0, second=0, timezone=timezone.utc)


class PopularityScheduler:
    """
    Runs the popularity scorer once at startup and then daily at midnight UTC.

    start_all() is idempotent: jobs are registered under fixed ids with
    replace_existing, so a second call replaces the jobs instead of adding more.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        scheduler_factory: Optional[Callable[[], BaseScheduler]] = None,
        window_days: Optional[int] = None,
        scorer: Callable[..., int] = recompute_scores,
    ):
        self._session_factory = session_factory
        self._scheduler_factory = scheduler_factory or (lambda: BackgroundScheduler(timezone=timezone.utc))
        self._window_days = window_days or settings.POPULARITY_WINDOW_DAYS
        self._scorer = scorer
        self._scheduler: Optional[BaseScheduler] = None
        self._lock = threading.Lock()
        # Held for the duration of one scorer run
        self._run_lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        if self._scheduler is not None and self._scheduler.get_job(DAILY_JOB_ID) is not None:
            return SchedulerState.ARMED
        return SchedulerState.IDLE

    @property
    def scheduler(self) -> Optional[BaseScheduler]:
        return self._scheduler

    def run_popularity_job(self) -> bool:
        """
        Scheduled job: recompute popularity scores.

        The startup and daily jobs share one run lock; a run that fires while
        another is in progress is skipped. Failures are logged and swallowed so
        the daily trigger stays armed and the previous scores remain in place
        until the next successful run.

        Returns:
            False if the run was skipped, True otherwise
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Popularity recompute already in progress; skipping this run")
            return False

        try:
            logger.info("Running popularity recompute job")
            db: Session = self._session_factory()
            try:
                ranked = self._scorer(db, window_days=self._window_days)
                logger.info(f"Popularity recompute job completed: {ranked} books ranked")
            except Exception as e:
                logger.exception(f"Popularity recompute job failed: {e}")
            finally:
                db.close()
        finally:
            self._run_lock.release()
        return True

    def start_all(self) -> None:
        """
        Run the recompute once now (fire and forget) and arm the daily job.
        Call this from the FastAPI startup event.
        """
        with self._lock:
            if self._scheduler is None:
                logger.info("Starting background scheduler")
                self._scheduler = self._scheduler_factory()

            # No trigger: APScheduler runs it once, as soon as possible
            self._scheduler.add_job(
                self.run_popularity_job,
                id=STARTUP_JOB_ID,
                name="Initial popularity recompute",
                replace_existing=True,
                max_instances=1,
            )

            self._scheduler.add_job(
                self.run_popularity_job,
                trigger=daily_midnight_trigger(),
                id=DAILY_JOB_ID,
                name="Daily popularity recompute (midnight UTC)",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )

            if not self._scheduler.running:
                self._scheduler.start()

            minutes = int(seconds_until_next_midnight_utc() // 60)
            logger.info(f"Popularity recompute armed; next daily run in {minutes} minutes")

    def stop_all(self) -> None:
        """
        Cancel all jobs and stop the background scheduler.
        Call this from the FastAPI shutdown event.
        """
        with self._lock:
            if self._scheduler is None:
                return

            logger.info("Stopping background scheduler")
            self._scheduler.remove_all_jobs()
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
