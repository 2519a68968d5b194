"""
Round Pick'em Background Scheduler Service

Runs housekeeping with APScheduler: locking rounds whose lock time has passed
and purging expired magic-link tokens. Neither job is needed for correctness,
since picks are refused past the lock time whatever the round's status says.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from roundpicks import db

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages background housekeeping jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.job_stats = {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "rounds_locked": 0,
            "tokens_purged": 0,
        }

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        interval = self.app.config.get("AUTO_LOCK_INTERVAL_SECONDS", 60)

        self.scheduler.add_job(
            func=self._lock_expired_rounds,
            trigger=IntervalTrigger(seconds=interval),
            id="lock_expired_rounds",
            name="Lock Rounds Past Lock Time",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        # Hourly token cleanup
        self.scheduler.add_job(
            func=self._purge_expired_tokens,
            trigger=CronTrigger(minute=15),
            id="purge_expired_tokens",
            name="Purge Expired Tokens",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        logger.info("Core scheduled jobs added")

    def _lock_expired_rounds(self):
        from roundpicks.services.round_service import lock_expired_rounds

        with self.app.app_context():
            try:
                locked = lock_expired_rounds()
                self._update_stats(True, rounds_locked=len(locked))
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in auto-lock job: {e}", exc_info=True)

    def _purge_expired_tokens(self):
        from roundpicks.services.token_service import purge_expired_tokens

        with self.app.app_context():
            try:
                purged = purge_expired_tokens()
                self._update_stats(True, tokens_purged=purged)
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in token purge job: {e}", exc_info=True)

    def _update_stats(self, success, rounds_locked=0, tokens_purged=0, error=None):
        self.job_stats["last_run"] = datetime.now(timezone.utc)
        self.job_stats["total_runs"] += 1

        if success:
            self.job_stats["successful_runs"] += 1
            self.job_stats["rounds_locked"] += rounds_locked
            self.job_stats["tokens_purged"] += tokens_purged
            self.job_stats["last_error"] = None
        else:
            self.job_stats["failed_runs"] += 1
            self.job_stats["last_error"] = str(error)

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        last_run = self.job_stats["last_run"]
        stats = dict(self.job_stats, last_run=last_run.isoformat() if last_run else None)
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}


# Global scheduler instance
scheduler_service = SchedulerService()
