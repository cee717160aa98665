"""
Reminder scheduler.

One ReminderScheduler is built at application startup with its session
factory and dispatcher injected, started in the lifespan and shut down with
it. Both sweeps run daily at the configured hour on a background thread;
shutdown lets a running sweep finish its current company and stop.
"""
import logging
import threading
from typing import Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from app.core.config import SchedulerSettings, settings
from app.services.dispatcher import NotificationDispatcher
from app.services.reminders import ReminderSweeper

logger = logging.getLogger(__name__)

PRE_DEADLINE_JOB_ID = "kpi_setting_reminders"
OVERDUE_JOB_ID = "kpi_daily_overdue_reminders"


class ReminderScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        scheduler_settings: Optional[SchedulerSettings] = None,
    ):
        self.settings = scheduler_settings or settings.scheduler
        self.stop_event = threading.Event()
        self.sweeper = ReminderSweeper(session_factory, dispatcher, stop_event=self.stop_event)
        self.scheduler = BackgroundScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": ThreadPoolExecutor(max_workers=2)},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": self.settings.misfire_grace_seconds,
            },
            timezone=self.settings.timezone,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def _register_jobs(self):
        trigger_args = {
            "hour": self.settings.hour,
            "minute": self.settings.minute,
            "timezone": self.settings.timezone,
        }
        self.scheduler.add_job(
            self.run_pre_deadline,
            CronTrigger(**trigger_args),
            id=PRE_DEADLINE_JOB_ID,
            name="KPI setting reminders (before meeting date)",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_overdue,
            CronTrigger(**trigger_args),
            id=OVERDUE_JOB_ID,
            name="Daily overdue KPI reminders",
            replace_existing=True,
        )

    def start(self):
        if self.scheduler.running:
            return
        self.stop_event.clear()
        self._register_jobs()
        self.scheduler.start()
        logger.info(
            f"Reminder scheduler started: daily at {self.settings.hour:02d}:{self.settings.minute:02d} "
            f"({self.settings.timezone})"
        )

    def shutdown(self, wait: bool = True):
        if not self.scheduler.running:
            return
        self.stop_event.set()
        self.scheduler.shutdown(wait=wait)
        logger.info("Reminder scheduler stopped")

    def run_pre_deadline(self):
        try:
            return self.sweeper.run_pre_deadline()
        except Exception:
            # Keep the job alive for the next tick
            logger.exception("Pre-deadline reminder job failed")

    def run_overdue(self):
        try:
            return self.sweeper.run_overdue()
        except Exception:
            logger.exception("Overdue reminder job failed")
