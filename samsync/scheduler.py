# samsync/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from datetime import datetime, timedelta
import logging

from samsync.cache import CacheStore
from samsync.db import SessionLocal
from samsync.ingest.sam_gov import SamGovClient
from samsync.notify import BestEffortNotifier, DatabaseNotificationSink
from samsync.settings import settings
from samsync.sweeps import run_saved_searches, send_due_reminders
from samsync.sync import BackfillState, SyncOrchestrator

# Set up logging
logger = logging.getLogger("scheduler")
logger.setLevel(logging.INFO)

# Global scheduler instance
_scheduler = None

JOB_DEFAULTS = {"max_instances": 1, "coalesce": True}


class PipelineScheduler:
    """
    Owns the background scheduler and everything its jobs share: the
    orchestrator, the backfill state and the notifier.
    """

    def __init__(
        self,
        orchestrator=None,
        session_factory=None,
        notifier=None,
        timezone=None,
        scheduler=None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.state = orchestrator.state if orchestrator else BackfillState()
        self.orchestrator = orchestrator or SyncOrchestrator(
            SamGovClient(),
            session_factory=self.session_factory,
            state=self.state,
        )
        self.cache = self.orchestrator.cache
        self.notifier = notifier or BestEffortNotifier(DatabaseNotificationSink(self.session_factory))
        self.scheduler = scheduler or BackgroundScheduler(
            timezone=timezone or settings.SCHEDULER_TIMEZONE,
            daemon=True,
            job_defaults=JOB_DEFAULTS,
        )

    # ---------- Jobs ----------

    def run_daily_sync(self):
        logger.info("=" * 60)
        logger.info(f"🕐 Starting daily SAM.gov sync at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 60)
        try:
            result = self.orchestrator.sync_recent()
            logger.info(f"✅ Daily sync complete: {result.ingest.summary}")
        except Exception as e:
            logger.error(f"❌ Daily sync failed: {e}")

    def run_reminders(self):
        try:
            send_due_reminders(self.session_factory, self.notifier)
        except Exception as e:
            logger.error(f"❌ Reminder sweep failed: {e}")

    def run_saved_searches(self):
        logger.info(f"🕐 Running saved searches at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        try:
            run_saved_searches(self.session_factory, self.cache, self.notifier)
        except Exception as e:
            logger.error(f"❌ Saved search sweep failed: {e}")

    def run_backfill(self):
        try:
            outcome = self.orchestrator.backfill()
            if outcome is not None:
                logger.info(
                    f"✅ Backfill finished: {len(outcome.succeeded)}/{outcome.windows} windows, "
                    f"{outcome.records} records"
                )
        except Exception as e:
            logger.error(f"❌ Backfill failed: {e}")

    def run_startup(self):
        """Sync the last week, then kick off a backfill if the cache is nearly empty."""
        logger.info("🚀 Running startup sync...")
        try:
            self.orchestrator.sync_recent()
        except Exception as e:
            logger.error(f"❌ Startup sync failed: {e}")

        try:
            count = self.cache.count()
            if count < settings.BACKFILL_LOW_WATER_MARK and not self.state.is_running:
                logger.info(f"📦 Cache holds {count} opportunities; starting background backfill")
                self.scheduler.add_job(
                    self.run_backfill,
                    DateTrigger(run_date=datetime.now(self.scheduler.timezone)),
                    id="samgov_backfill",
                    name="SAM.gov Historical Backfill",
                    replace_existing=True,
                )
        except Exception as e:
            logger.error(f"❌ Startup backfill check failed: {e}")

    # ---------- Lifecycle ----------

    def add_jobs(self):
        self.scheduler.add_job(
            self.run_daily_sync,
            CronTrigger(hour=settings.DAILY_SYNC_HOUR, minute=0),
            id="samgov_daily_sync",
            name="Daily SAM.gov Sync",
            replace_existing=True,
        )
        logger.info(f"📅 Scheduled: Daily SAM.gov sync at {settings.DAILY_SYNC_HOUR:02d}:00")

        self.scheduler.add_job(
            self.run_reminders,
            IntervalTrigger(minutes=settings.REMINDER_INTERVAL_MINUTES),
            id="reminder_sweep",
            name="Opportunity Reminders",
            replace_existing=True,
        )
        logger.info(f"📅 Scheduled: Reminder sweep every {settings.REMINDER_INTERVAL_MINUTES} minutes")

        self.scheduler.add_job(
            self.run_saved_searches,
            CronTrigger(hour=settings.SAVED_SEARCH_HOUR, minute=0),
            id="saved_search_sweep",
            name="Daily Saved Searches",
            replace_existing=True,
        )
        logger.info(f"📅 Scheduled: Saved searches at {settings.SAVED_SEARCH_HOUR:02d}:00")

        self.scheduler.add_job(
            self.run_startup,
            DateTrigger(
                run_date=datetime.now(self.scheduler.timezone)
                + timedelta(seconds=settings.STARTUP_DELAY_SECONDS)
            ),
            id="samgov_startup_sync",
            name="Startup SAM.gov Sync",
            replace_existing=True,
        )
        logger.info(f"📅 Scheduled: Startup sync in {settings.STARTUP_DELAY_SECONDS}s")

    def start(self):
        self.add_jobs()
        self.scheduler.start()
        logger.info("✅ Scheduler started successfully!")

        for job in self.scheduler.get_jobs():
            logger.info(f"⏰ Next run: {job.name} at {job.next_run_time}")

    def stop(self):
        logger.info("Stopping scheduler...")
        self.state.request_cancel()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def status(self):
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)  # unset until the scheduler starts
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })

        return {
            "running": self.scheduler.running,
            "jobs": jobs,
            "timezone": str(self.scheduler.timezone),
            "backfill": self.state.status.value,
        }


def start_scheduler():
    """
    Start the background scheduler: daily sync, hourly reminders, daily
    saved searches and a one-time startup sync.
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already running, skipping initialization")
        return _scheduler

    logger.info("🚀 Initializing SAM.gov scheduler...")
    _scheduler = PipelineScheduler()
    _scheduler.start()
    return _scheduler


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.stop()
        _scheduler = None


def get_scheduler_status():
    """Get current scheduler status and upcoming jobs."""
    global _scheduler

    if _scheduler is None:
        return {
            "running": False,
            "jobs": []
        }

    return _scheduler.status()
