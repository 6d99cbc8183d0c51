# payments/scheduler.py
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from payments.reminders import run_batch

logger = logging.getLogger(__name__)


class PaymentScheduler:
    """
    Runs the payment check once a day at a fixed wall-clock time.

    The APScheduler instance is injectable so tests can drive ``tick`` (or
    ``run_batch`` directly) without a background thread.
    """

    JOB_ID = "daily_payment_check"

    def __init__(self, app, scheduler=None, hour=None, minute=None, timezone=None):
        self.app = app
        self.hour = app.config.get("PAYMENT_CHECK_HOUR", 9) if hour is None else hour
        self.minute = app.config.get("PAYMENT_CHECK_MINUTE", 0) if minute is None else minute
        self.timezone = timezone or app.config.get("SCHEDULER_TIMEZONE", "UTC")
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.timezone)

    @property
    def running(self):
        return bool(self.scheduler.running)

    def tick(self):
        # the job runs on a scheduler thread, outside any request
        with self.app.app_context():
            try:
                return run_batch()
            except Exception:
                logger.exception("Daily payment check failed")
                return None

    def start(self):
        if self.running:
            return
        self.scheduler.add_job(
            self.tick,
            CronTrigger(hour=self.hour, minute=self.minute, timezone=self.timezone),
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.start()
        logger.info(
            "Payment scheduler started, checking daily at %02d:%02d %s",
            self.hour, self.minute, self.timezone,
        )

    def stop(self, wait=False):
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Payment scheduler stopped")
