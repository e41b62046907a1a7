import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import get_settings
from models import Bill, BillFrequency, Transaction, TransactionType

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, without tzinfo."""
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def _shift_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    # days past the end of a short month spill into the following one
    return date(year, month, 1) + timedelta(days=base.day - 1)


def advance_due_date(due: date, frequency: BillFrequency) -> date:
    if frequency == BillFrequency.weekly:
        return due + timedelta(weeks=1)
    if frequency == BillFrequency.monthly:
        return _shift_months(due, 1)
    if frequency == BillFrequency.yearly:
        return _shift_months(due, 12)
    raise ValueError(f"Unsupported bill frequency: {frequency}")


class BillPayment:
    """Marks a bill paid, rolls recurring bills forward and books the expense."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def pay(
        self, bill: Bill, now: Optional[datetime] = None
    ) -> tuple[Optional[Bill], Transaction]:
        now = now or local_now()
        bill.is_paid = True
        self.session.flush()

        successor = None
        if bill.is_recurring:
            successor = self._roll_forward(bill)

        txn = Transaction(
            user_id=bill.user_id,
            type=TransactionType.expense,
            amount_cents=bill.amount_cents,
            category=bill.category,
            description=f"Paid bill: {bill.name}",
            date=now,
        )
        self.session.add(txn)
        self.session.flush()
        logger.info(
            f"bill_paid: bill_id={bill.id} user_id={bill.user_id} "
            f"successor_id={successor.id if successor else None}"
        )
        return successor, txn

    def _roll_forward(self, bill: Bill) -> Bill:
        if bill.frequency is None:
            raise ValueError("Recurring bill has no frequency")
        successor = Bill(
            user_id=bill.user_id,
            name=bill.name,
            amount_cents=bill.amount_cents,
            due_date=advance_due_date(bill.due_date, bill.frequency),
            category=bill.category,
            is_paid=False,
            is_recurring=True,
            frequency=bill.frequency,
            notification_enabled=bill.notification_enabled,
        )
        self.session.add(successor)
        self.session.flush()
        return successor
