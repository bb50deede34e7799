"""
Liga Typerow Settlement Scheduler Service

Runs the settlement sweep in the background using APScheduler. Matches whose
result was recorded but whose bets were never settled (for example because
the process stopped mid-way) are picked up by the sweep, and all rankings are
rebuilt from settled bets once a night.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from liga_typerow import db
from liga_typerow.services.settlement_service import (
    recompute_all_rankings,
    settle_pending_matches,
)

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages background settlement jobs"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.sync_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats():
        return {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "matches_settled": 0,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        # Register shutdown
        atexit.register(self.shutdown)

        # Start scheduler if enabled
        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            # Clear any existing jobs
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
        """Add core scheduled jobs"""
        sweep_seconds = self.app.config.get("SETTLEMENT_SWEEP_SECONDS", 120)

        # Settle finished matches that have not been settled yet
        self.scheduler.add_job(
            func=self._settle_pending,
            trigger=IntervalTrigger(seconds=sweep_seconds),
            id="settle_pending_matches",
            name="Settle Pending Matches",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

        # Nightly full ranking rebuild (3 AM UTC)
        self.scheduler.add_job(
            func=self._nightly_rankings,
            trigger=CronTrigger(hour=3, minute=0),
            id="recompute_rankings",
            name="Nightly Ranking Recompute",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _settle_pending(self):
        """Sweep for finished but unsettled matches"""
        with self.app.app_context():
            try:
                settled, failed = settle_pending_matches()

                if failed:
                    self.sync_stats["last_error"] = (
                        f"Could not settle matches: {', '.join(str(m) for m in failed)}"
                    )
                    logger.warning(self.sync_stats["last_error"])

                self._update_stats(not failed, settled)

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in settlement sweep: {e}", exc_info=True)

    def _nightly_rankings(self):
        """Rebuild every ranking row from settled bets"""
        with self.app.app_context():
            try:
                logger.info("Running nightly ranking recompute...")
                count = recompute_all_rankings()
                self._update_stats(True)
                self._cleanup_old_data()
                logger.info(f"Nightly ranking recompute completed for {count} users")

            except Exception as e:
                db.session.rollback()
                self._update_stats(False)
                self.sync_stats["last_error"] = str(e)
                logger.error(f"Error in nightly ranking recompute: {e}", exc_info=True)

    def _update_stats(self, success, matches_settled=0):
        """Update run statistics"""
        self.sync_stats["last_run"] = datetime.now(timezone.utc)
        self.sync_stats["total_runs"] += 1

        if success:
            self.sync_stats["successful_runs"] += 1
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_runs"] += 1

        self.sync_stats["matches_settled"] += matches_settled

    def _cleanup_old_data(self):
        """Reset run statistics periodically"""
        if self.sync_stats["total_runs"] > 10000:
            last_run = self.sync_stats["last_run"]
            self.sync_stats = self._empty_stats()
            self.sync_stats["last_run"] = last_run

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.sync_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, job="settle"):
        """Manually trigger a job"""
        if self.app is None:
            return False, "Scheduler is not initialized"

        if job == "settle":
            self._settle_pending()
        elif job == "rankings":
            self._nightly_rankings()
        else:
            return False, f"Unknown job: {job}"

        if self.sync_stats["last_error"]:
            return False, f"Manual {job} run failed: {self.sync_stats['last_error']}"
        return True, f"Manual {job} run completed"


# Global scheduler instance
scheduler_service = SchedulerService()
