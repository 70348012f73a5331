"""
F1 Tipping Results Scheduler Service

Runs an hourly sweep with APScheduler: every race that finished at least
RESULTS_SETTLE_HOURS ago and has not been scored yet gets its results synced
and its predictions scored.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app import db
from app.models import Race
from app.services.results_service import sync_race_results
from app.services.score_service import process_race_scores
from app.utils.exceptions import ScoringInProgress
from app.utils.results_sync import ResultsSync

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages the background results sweep"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.results_sync = None
        self.is_running = False
        self.sync_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats():
        return {
            "last_sweep": None,
            "total_sweeps": 0,
            "successful_sweeps": 0,
            "failed_sweeps": 0,
            "races_scored": 0,
            "last_error": None,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        self.results_sync = ResultsSync(app.config.get("RESULTS_API_BASE_URL"))

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
        self.scheduler.add_job(
            func=self._results_sweep,
            trigger=CronTrigger(minute=0),  # Top of every hour
            id="results_sweep",
            name="Sync Results and Score Races",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=300,
        )

        logger.info("Core scheduled jobs added")

    def _results_sweep(self):
        with self.app.app_context():
            self.run_sweep()

    def run_sweep(self):
        """Sync and score every race awaiting results. Needs an app context.

        Returns the number of races scored in this sweep.
        """
        settle_hours = self.app.config.get("RESULTS_SETTLE_HOURS", 3)
        scored = 0
        errors = []

        try:
            races = Race.get_races_awaiting_results(settle_hours)
        except Exception as e:
            db.session.rollback()
            self._update_stats(False, error=str(e))
            logger.error(f"Error selecting races for results sweep: {e}", exc_info=True)
            return 0

        if not races:
            logger.debug("Results sweep: no races awaiting results")

        for race in races:
            race_id = race.id
            race_label = f"{race.season} R{race.round} {race.race_name}"
            try:
                logger.info(f"Results sweep: processing {race_label}")

                if race.result is None or not race.result.entries:
                    result = sync_race_results(race, self.results_sync)
                    if result is None:
                        logger.info(f"Results sweep: no results yet for {race_label}")
                        continue

                report = process_race_scores(race_id, force=False)
                if not report.skipped:
                    scored += 1
                logger.info(
                    f"Results sweep: {race_label} processed={report.processed_count} "
                    f"failed={report.failed_count} skipped={report.skipped}"
                )

            except ScoringInProgress:
                logger.info(f"Results sweep: {race_label} is being scored elsewhere")
            except Exception as e:
                db.session.rollback()
                errors.append(f"{race_label}: {e}")
                logger.error(f"Results sweep failed for {race_label}: {e}", exc_info=True)

        if errors:
            self._update_stats(False, scored, error="; ".join(errors))
        else:
            self._update_stats(True, scored)

        return scored

    def _update_stats(self, success, races_scored=0, error=None):
        self.sync_stats["last_sweep"] = datetime.now(timezone.utc)
        self.sync_stats["total_sweeps"] += 1
        self.sync_stats["races_scored"] += races_scored

        if success:
            self.sync_stats["successful_sweeps"] += 1
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_sweeps"] += 1
            self.sync_stats["last_error"] = error

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
        if stats["last_sweep"]:
            stats["last_sweep"] = stats["last_sweep"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_sync(self):
        """Manually trigger a results sweep"""
        with self.app.app_context():
            try:
                scored = self.run_sweep()
                return True, f"Manual results sweep completed, {scored} races scored"
            except Exception as e:
                return False, f"Manual sweep failed: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
