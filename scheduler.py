import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from recurrence import local_today
from services import bills_due_for_reminder


logger = logging.getLogger(__name__)


def collect_reminders(session, today: date, days: int) -> list[dict[str, object]]:
    reminders = []
    for bill in bills_due_for_reminder(session, today, days):
        reminders.append(
            {
                "user_id": bill.user_id,
                "bill_id": bill.id,
                "name": bill.name,
                "amount_cents": bill.amount_cents,
                "due_date": bill.due_date.isoformat(),
                "days_left": (bill.due_date - today).days,
            }
        )
    return reminders


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.reminder_days = settings.reminder_days
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual", today: Optional[date] = None) -> int:
        today = today or local_today()
        logger.info(f"reminder_run: source={source}")
        with session_scope() as session:
            reminders = collect_reminders(session, today, self.reminder_days)
        for item in reminders:
            logger.info(
                "bill_due_soon: user_id={user_id} bill_id={bill_id} name={name} "
                "due_date={due_date} days_left={days_left}".format(**item)
            )
        logger.info(f"reminder_run: source={source} reminders={len(reminders)}")
        return len(reminders)

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=8, minute=0)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["daily_08:00"],
            id="bill_reminders_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 08:00 bill reminders")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
