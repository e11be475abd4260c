# hookpanel/static/scheduler.py
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter
from loguru import logger

from hookpanel.static.log_recorder import get_log_recorder
from hookpanel.utils.errors import StorageError
from hookpanel.utils.settings import get_settings

RETENTION_JOB_ID = "webhook_log_retention"


def purge_expired_webhook_logs(retention_days: int) -> int:
    """
    Global function for the retention sweep that APScheduler can serialize.
    Deletes audit rows older than retention_days; 0 keeps them forever.
    """
    log = logger.bind(log_type="schedule")
    if retention_days <= 0:
        return 0
    try:
        deleted = get_log_recorder().purge_webhook_logs(retention_days)
        log.info(f"Retention sweep removed {deleted} webhook logs older than {retention_days} days")
        return deleted
    except StorageError as e:
        log.error(f"Retention sweep failed: {e.message}")
        return 0


class RetentionScheduler:
    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self.log = logger.bind(log_type="schedule")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start the scheduler and register the retention job"""
        if not self.scheduler.running:
            self.scheduler.start()
            settings = get_settings()
            self.schedule_retention(settings.retention_cron, settings.webhook_log_retention_days)
            self.log.info("Scheduler started")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.log.info("Scheduler stopped")

    def schedule_retention(self, cron_expression: str, retention_days: int):
        """(Re)schedule the webhook log retention sweep on a cron schedule"""
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")

        self.log.info(f"Scheduling retention sweep with cron: {cron_expression}")
        self.scheduler.add_job(
            purge_expired_webhook_logs,
            trigger=CronTrigger.from_crontab(cron_expression),
            args=[retention_days],
            id=RETENTION_JOB_ID,
            name="Webhook log retention",
            replace_existing=True,
            misfire_grace_time=None  # Allow misfired sweeps to run immediately
        )

    def get_job(self):
        return self.scheduler.get_job(RETENTION_JOB_ID)


# Create global scheduler instance
scheduler = RetentionScheduler()
