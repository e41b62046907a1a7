from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

import analytics
from errors import NotFoundError, ValidationError
from models import (
    Account,
    Bill,
    Category,
    Goal,
    Transaction,
    TransactionType,
)
from periods import Period, month_period, previous_month_period
from recurrence import BillPayment, local_now
from schemas import (
    AccountIn,
    BillIn,
    CategoryIn,
    GoalIn,
    GoalUpdateIn,
    TransactionIn,
)
from uploads import StoredReceipt

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: dict[TransactionType, list[str]] = {
    TransactionType.income: [
        "Salary",
        "Freelance",
        "Investment",
        "Bank Transfer",
        "Other",
    ],
    TransactionType.expense: [
        "Food",
        "Transportation",
        "Housing",
        "Entertainment",
        "Shopping",
        "Healthcare",
        "Education",
        "Travel",
        "Gifts",
        "Bills",
        "Other",
    ],
}


def seed_default_categories(session: Session) -> int:
    """Insert the shared default categories unless any default already exists."""
    existing = session.scalar(
        select(func.count(Category.id)).where(Category.is_default.is_(True))
    )
    if existing:
        return 0
    count = 0
    for txn_type, names in DEFAULT_CATEGORIES.items():
        for name in names:
            session.add(
                Category(user_id=None, name=name, type=txn_type, is_default=True)
            )
            count += 1
    session.flush()
    logger.info(f"default_categories_seeded: count={count}")
    return count


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFoundError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance_cents=data.balance_cents,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.name = data.name.strip()
        account.type = data.type
        account.balance_cents = data.balance_cents
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        self.session.delete(account)
        self.session.commit()


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(Category.user_id == self.user_id, Category.is_default.is_(True))

    def list_all(self) -> list[Category]:
        stmt = select(Category).where(self._visible()).order_by(Category.name)
        return self.session.scalars(stmt).all()

    def list_grouped(self) -> dict[str, list[dict[str, object]]]:
        grouped: dict[str, list[dict[str, object]]] = {
            TransactionType.income.value: [],
            TransactionType.expense.value: [],
        }
        for category in self.list_all():
            grouped[category.type.value].append(category.to_dict())
        return grouped

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValidationError("Category name cannot be empty")
        existing = self.session.scalar(
            select(Category).where(
                self._visible(),
                Category.type == data.type,
                func.lower(Category.name) == clean_name.lower(),
            )
        )
        if existing:
            raise ValidationError("Category already exists")
        category = Category(
            user_id=self.user_id,
            name=clean_name,
            type=data.type,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise NotFoundError("Category not found")
        if category.is_default:
            raise ValidationError("Cannot delete default category")
        self.session.delete(category)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def between(
        self,
        start: datetime,
        end: datetime,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date, Transaction.id)
        )
        if transaction_type is not None:
            stmt = stmt.where(Transaction.type == transaction_type)
        return self.session.scalars(stmt).all()

    def for_period(
        self, period: Period, transaction_type: Optional[TransactionType] = None
    ) -> list[Transaction]:
        return self.between(period.start_at, period.end_at, transaction_type)

    def recent(self, limit: int = 5) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(
        self, data: TransactionIn, receipt: Optional[StoredReceipt] = None
    ) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            category=data.category.strip(),
            description=data.description,
            date=data.date or local_now(),
            receipt_url=receipt.url if receipt else None,
            receipt_public_id=receipt.public_id if receipt else None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.category = data.category.strip()
        txn.description = data.description
        if data.date is not None:
            txn.date = data.date
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()


class BillService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Bill]:
        stmt = (
            select(Bill)
            .where(Bill.user_id == self.user_id)
            .order_by(Bill.due_date, Bill.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, bill_id: int) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if not bill or bill.user_id != self.user_id:
            raise NotFoundError("Bill not found")
        return bill

    def create(self, data: BillIn) -> Bill:
        bill = Bill(user_id=self.user_id, is_paid=False, **data.model_dump())
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def update(self, bill_id: int, data: BillIn) -> Bill:
        bill = self.get(bill_id)
        for field, value in data.model_dump().items():
            setattr(bill, field, value)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def delete(self, bill_id: int) -> None:
        bill = self.get(bill_id)
        self.session.delete(bill)
        self.session.commit()

    def pay(
        self, bill_id: int, now: Optional[datetime] = None
    ) -> tuple[Bill, Optional[Bill], Transaction]:
        bill = self.get(bill_id)
        successor, txn = BillPayment(self.session).pay(bill, now)
        self.session.commit()
        return bill, successor, txn

    def upcoming(self, today: date, limit: int = 5) -> list[Bill]:
        stmt = (
            select(Bill)
            .where(
                Bill.user_id == self.user_id,
                Bill.is_paid.is_(False),
                Bill.due_date >= today,
            )
            .order_by(Bill.due_date, Bill.id)
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


def bills_due_for_reminder(session: Session, today: date, days: int) -> list[Bill]:
    """Unpaid bills with notifications on, due within ``days`` of ``today``."""
    stmt = (
        select(Bill)
        .where(
            Bill.is_paid.is_(False),
            Bill.notification_enabled.is_(True),
            Bill.due_date.between(today, today + timedelta(days=days)),
        )
        .order_by(Bill.user_id, Bill.due_date)
    )
    return session.scalars(stmt).all()


class GoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id)
            .order_by(Goal.target_date, Goal.id)
        )
        return self.session.scalars(stmt).all()

    def active(self) -> list[Goal]:
        stmt = (
            select(Goal)
            .where(Goal.user_id == self.user_id, Goal.is_completed.is_(False))
            .order_by(Goal.target_date, Goal.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, goal_id: int) -> Goal:
        goal = self.session.get(Goal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundError("Goal not found")
        return goal

    def create(self, data: GoalIn) -> Goal:
        goal = Goal(
            user_id=self.user_id,
            name=data.name.strip(),
            target_amount_cents=data.target_amount_cents,
            current_amount_cents=data.current_amount_cents,
            start_date=data.start_date or local_now(),
            target_date=data.target_date,
            category=data.category.strip(),
            is_completed=False,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: GoalUpdateIn) -> Goal:
        goal = self.get(goal_id)
        goal.name = data.name.strip()
        goal.target_amount_cents = data.target_amount_cents
        goal.current_amount_cents = data.current_amount_cents
        if data.start_date is not None:
            goal.start_date = data.start_date
        goal.target_date = data.target_date
        goal.category = data.category.strip()
        if data.is_completed is not None:
            goal.is_completed = data.is_completed
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def _increment(self, goal_id: int, amount_cents: int, *, latch: bool) -> Goal:
        new_amount = Goal.current_amount_cents + amount_cents
        values: dict[str, object] = {"current_amount_cents": new_amount}
        if latch:
            values["is_completed"] = case(
                (new_amount >= Goal.target_amount_cents, True),
                else_=Goal.is_completed,
            )
        stmt = (
            update(Goal)
            .where(Goal.id == goal_id, Goal.user_id == self.user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Goal not found")
        return self.session.get(Goal, goal_id, populate_existing=True)

    def contribute(self, goal_id: int, amount_cents: Optional[int]) -> Goal:
        """Add a signed amount in one statement; completion is left alone."""
        if amount_cents is None:
            raise ValidationError("Amount is required")
        goal = self._increment(goal_id, amount_cents, latch=False)
        self.session.commit()
        return goal

    def progress(
        self,
        goal_id: int,
        amount_cents: Optional[int],
        now: Optional[datetime] = None,
    ) -> tuple[Goal, Transaction]:
        if not amount_cents:
            raise ValidationError("Amount is required")
        if amount_cents < 0:
            raise ValidationError("Amount must be positive")
        was_completed = self.get(goal_id).is_completed
        goal = self._increment(goal_id, amount_cents, latch=True)
        txn = Transaction(
            user_id=self.user_id,
            type=TransactionType.expense,
            amount_cents=amount_cents,
            category=goal.category,
            description=f"Contribution to goal: {goal.name}",
            date=now or local_now(),
        )
        self.session.add(txn)
        self.session.commit()
        if goal.is_completed and not was_completed:
            logger.info(f"goal_completed: goal_id={goal.id} user_id={self.user_id}")
        return goal, txn


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.transactions = TransactionService(session, user_id)

    def expenses(self, period: Period) -> dict[str, object]:
        expenses = self.transactions.for_period(period, TransactionType.expense)
        report = analytics.expense_report(expenses)
        report["start"] = period.start.isoformat()
        report["end"] = period.end.isoformat()
        return report

    def trends(self, today: date) -> list[dict[str, object]]:
        current = self.transactions.for_period(
            month_period(today), TransactionType.expense
        )
        previous = self.transactions.for_period(
            previous_month_period(today), TransactionType.expense
        )
        return analytics.category_trends(current, previous)

    def weekly(self, today: date) -> list[dict[str, object]]:
        start = datetime.combine(today - timedelta(days=6), datetime.min.time())
        end = datetime.combine(today, datetime.max.time())
        return analytics.weekly_comparison(
            self.transactions.between(start, end), today
        )

    def transaction_stats(self, today: date) -> dict[str, object]:
        stats = analytics.summary_stats(self.transactions.list())
        stats["weekly_comparison"] = self.weekly(today)
        stats["expenses_breakdown"] = self.trends(today)
        return stats


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.transactions = TransactionService(session, user_id)
        self.analytics = AnalyticsService(session, user_id)

    def stats(self, today: date) -> dict[str, object]:
        month_expenses = self.transactions.for_period(
            month_period(today), TransactionType.expense
        )
        bills = BillService(self.session, self.user_id).upcoming(today)
        goals = GoalService(self.session, self.user_id).active()
        return {
            "total_balance_cents": analytics.net_balance(self.transactions.list()),
            "weekly_data": self.analytics.weekly(today),
            "expenses_breakdown": analytics.expense_shares(month_expenses),
            "recent_transactions": [
                txn.to_dict() for txn in self.transactions.recent(5)
            ],
            "upcoming_bills": [bill.to_dict() for bill in bills],
            "goals": [goal.to_dict() for goal in goals],
        }
