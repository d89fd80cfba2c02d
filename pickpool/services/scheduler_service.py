"""
Background scheduling of recap batches and favorite-pick generation (APScheduler).

    daily     stale recompute of the current season (ended weeks only)
    weekly    forced recompute of every week of the current season
    favorites Wednesday pick generation for the always-favorite participant
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from pickpool import db
from pickpool.services.batch_service import BatchAbortedError, BatchService
from pickpool.services.favorite_picks import FavoritePickGenerator
from pickpool.services.recap_service import MODE_FORCE, MODE_STALE

logger = logging.getLogger(__name__)

JOB_TYPES = ("daily", "weekly", "favorites")


class SchedulerService:
    """Manages the background jobs of the scoring engine"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.run_stats = self._empty_stats()

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
            "weeks_processed": 0,
        }

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
        self.stop()

    def _add_core_jobs(self):
        # Daily stale recompute (10 AM UTC, after Monday night games settle)
        self.scheduler.add_job(
            func=self._daily_recaps,
            trigger=CronTrigger(hour=10, minute=0),
            id="daily_recaps",
            name="Daily Stale Recap Recompute",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        # Weekly forced recompute (Tuesday 11 AM UTC)
        self.scheduler.add_job(
            func=self._weekly_recalculation,
            trigger=CronTrigger(day_of_week="tue", hour=11, minute=0),
            id="weekly_recalculation",
            name="Weekly Forced Recap Recompute",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        # Favorite picks (Wednesday 2 PM UTC, once lines are posted)
        self.scheduler.add_job(
            func=self._favorite_picks,
            trigger=CronTrigger(day_of_week="wed", hour=14, minute=0),
            id="favorite_picks",
            name="Always-Favorite Pick Generation",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

        logger.info("Core scheduled jobs added")

    def _run_batch(self, mode):
        with self.app.app_context():
            try:
                summary = BatchService.for_app(self.app).run_season(mode=mode)
                self._update_stats(summary["failed"] == 0, summary["processed"])
                if summary["failed"]:
                    self.run_stats["last_error"] = (
                        f"{summary['failed']} weeks failed in {mode} batch"
                    )
                return summary
            except BatchAbortedError as e:
                self._update_stats(False, error=str(e))
                logger.error(f"Scheduled {mode} batch aborted: {e}")
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=str(e))
                logger.error(f"Error in scheduled {mode} batch: {e}", exc_info=True)

    def _daily_recaps(self):
        return self._run_batch(MODE_STALE)

    def _weekly_recalculation(self):
        return self._run_batch(MODE_FORCE)

    def _favorite_picks(self):
        with self.app.app_context():
            try:
                batch = BatchService.for_app(self.app)
                generator = FavoritePickGenerator(batch.gateway, batch.settings)
                result = generator.run_weekly()
                self._update_stats(result["success"], error=result.get("message"))
                return result
            except Exception as e:
                db.session.rollback()
                self._update_stats(False, error=str(e))
                logger.error(f"Error generating favorite picks: {e}", exc_info=True)

    def _update_stats(self, success, weeks_processed=0, error=None):
        self.run_stats["last_run"] = datetime.now(timezone.utc)
        self.run_stats["total_runs"] += 1

        if success:
            self.run_stats["successful_runs"] += 1
            self.run_stats["weeks_processed"] += weeks_processed
            self.run_stats["last_error"] = None
        else:
            self.run_stats["failed_runs"] += 1
            self.run_stats["last_error"] = error

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

        stats = dict(self.run_stats)
        if stats["last_run"]:
            stats["last_run"] = stats["last_run"].isoformat()
        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, job_type="daily"):
        """Manually run one of the scheduled jobs"""
        if job_type not in JOB_TYPES:
            return False, f"Unknown job type: {job_type}"

        try:
            if job_type == "daily":
                result = self._daily_recaps()
            elif job_type == "weekly":
                result = self._weekly_recalculation()
            else:
                result = self._favorite_picks()
        except Exception as e:
            return False, f"Manual run failed: {e}"

        if result is None:
            return False, f"Manual {job_type} run failed: {self.run_stats['last_error']}"
        return True, f"Manual {job_type} run completed"

    def pause_job(self, job_id):
        if self.scheduler is None:
            return False, "Scheduler not initialized"
        try:
            self.scheduler.pause_job(job_id)
            return True, f"Job {job_id} paused"
        except Exception as e:
            return False, f"Failed to pause job: {e}"

    def resume_job(self, job_id):
        if self.scheduler is None:
            return False, "Scheduler not initialized"
        try:
            self.scheduler.resume_job(job_id)
            return True, f"Job {job_id} resumed"
        except Exception as e:
            return False, f"Failed to resume job: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
