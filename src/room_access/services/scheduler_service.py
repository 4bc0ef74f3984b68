from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from room_access.services.health_service import HealthService
from room_access.shared.logger import app_logger


class SchedulerService:
    """Runs the connectivity probe on a fixed interval"""

    def __init__(self, health_service: HealthService, interval_seconds: int):
        self.health_service = health_service
        self.interval_seconds = interval_seconds
        self.scheduler = None
        self.logger = app_logger
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.scheduler and self.is_running:
            self.logger.warning("Scheduler is already running")
            return

        if self.interval_seconds <= 0:
            self.logger.info("Scheduled health check disabled")
            return

        try:
            self.scheduler = BackgroundScheduler()

            self.scheduler.add_listener(self._job_executed_listener, EVENT_JOB_EXECUTED)
            self.scheduler.add_listener(self._job_error_listener, EVENT_JOB_ERROR)

            self._add_health_check_job()

            self.scheduler.start()
            self.is_running = True

            self.logger.info("Scheduler service started successfully")

        except Exception as e:
            self.logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler and self.is_running:
            try:
                self.scheduler.shutdown(wait=False)
                self.is_running = False
                self.logger.info("Scheduler service stopped")
            except Exception as e:
                self.logger.error(f"Error stopping scheduler: {e}")

    def _add_health_check_job(self):
        self.scheduler.add_job(
            func=self._run_health_check,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="connectivity_health_check",
            name="Connectivity Health Check",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=60,
        )
        self.logger.info(
            f"Connectivity health check scheduled every {self.interval_seconds} seconds"
        )

    def _run_health_check(self):
        result = self.health_service.run_connection_test()
        if not result["success"]:
            self.logger.warning(f"Scheduled health check found problems: {result['results']}")

    def _job_executed_listener(self, event):
        self.logger.debug(f"Job {event.job_id} executed successfully")

    def _job_error_listener(self, event):
        self.logger.error(f"Job {event.job_id} failed: {event.exception}")

    def get_jobs(self):
        """Scheduled jobs as plain dicts"""
        if not self.scheduler:
            return []

        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
