from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError
from models import TransactionType
from periods import resolve_expense_window
from schemas import TransactionIn
from services import AnalyticsService, DashboardService, TransactionService


def _txn(
    when: datetime,
    amount_cents: int,
    category: str = "Food",
    type: TransactionType = TransactionType.expense,
) -> TransactionIn:
    return TransactionIn(
        type=type,
        amount_cents=amount_cents,
        category=category,
        description="test",
        date=when,
    )


def test_update_and_delete_are_scoped_to_owner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txn = TransactionService(session, 1).create(_txn(datetime(2024, 1, 5), 1299))
        intruder = TransactionService(session, 2)

        with pytest.raises(NotFoundError):
            intruder.update(txn.id, _txn(datetime(2024, 1, 5), 1))
        with pytest.raises(NotFoundError):
            intruder.delete(txn.id)
        assert intruder.list() == []

        owner = TransactionService(session, 1)
        updated = owner.update(
            txn.id, _txn(datetime(2024, 1, 6), 1500, "Groceries")
        )
        assert updated.amount_cents == 1500
        assert updated.category == "Groceries"
        assert updated.date == datetime(2024, 1, 6)

        owner.delete(txn.id)
        assert owner.list() == []


def test_create_defaults_date_to_now() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txn = TransactionService(session, 1).create(
            TransactionIn(type=TransactionType.income, amount_cents=100, category="Salary")
        )
        assert txn.date is not None
        assert txn.receipt_url is None


def test_decimal_amount_is_converted_to_cents() -> None:
    data = TransactionIn.model_validate(
        {"type": "expense", "amount": "12,50", "category": "Food"}
    )
    assert data.amount_cents == 1250


def test_expense_analytics_default_window() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txns = TransactionService(session, 1)
        txns.create(_txn(datetime(2024, 1, 31, 23, 0), 1000))  # before window
        txns.create(_txn(datetime(2024, 2, 1, 0, 0), 200, "Travel"))
        txns.create(_txn(datetime(2024, 3, 10), 300))
        txns.create(_txn(datetime(2024, 4, 30, 23, 59), 400))
        txns.create(_txn(datetime(2024, 4, 2), 5000, "Salary", TransactionType.income))
        TransactionService(session, 2).create(_txn(datetime(2024, 3, 1), 777))

        period = resolve_expense_window(None, None, today=date(2024, 4, 15))
        assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 4, 30))

        report = AnalyticsService(session, 1).expenses(period)

        assert report["total_expenses_cents"] == 900
        assert len(report["monthly_expenses"]) == 3
        assert report["average_expense_cents"] == 300
        assert report["highest_expense_cents"] == 400
        assert report["most_frequent_category"] == "Food"
        assert report["start"] == "2024-02-01"
        assert report["end"] == "2024-04-30"


def test_custom_window_must_be_ordered() -> None:
    with pytest.raises(ValueError):
        resolve_expense_window("2024-03-01", "2024-02-01")
    period = resolve_expense_window("2024-01-01T00:00:00.000Z", "2024-01-31")
    assert (period.start, period.end) == (date(2024, 1, 1), date(2024, 1, 31))


def test_transaction_stats_include_weekly_and_trends() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txns = TransactionService(session, 1)
        txns.create(_txn(datetime(2024, 2, 10), 1000))
        txns.create(_txn(datetime(2024, 3, 9, 10, 0), 1500))
        txns.create(_txn(datetime(2024, 3, 10, 8, 0), 500, "Travel"))
        txns.create(_txn(datetime(2024, 3, 1), 9000, "Salary", TransactionType.income))

        stats = AnalyticsService(session, 1).transaction_stats(date(2024, 3, 10))

        assert stats["total_income_cents"] == 9000
        assert stats["total_expenses_cents"] == 3000
        assert stats["balance_cents"] == 6000
        assert len(stats["recent_transactions"]) == 4
        assert stats["weekly_comparison"][-1]["expense_cents"] == 500
        assert stats["weekly_comparison"][-2]["expense_cents"] == 1500
        trends = {item["name"]: item["trend"] for item in stats["expenses_breakdown"]}
        assert trends == {"Food": 50, "Travel": 100}


def test_dashboard_stats() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        txns = TransactionService(session, 1)
        txns.create(_txn(datetime(2024, 2, 10), 1000))
        txns.create(_txn(datetime(2024, 3, 9), 750))
        txns.create(_txn(datetime(2024, 3, 10), 250, "Travel"))
        txns.create(_txn(datetime(2024, 3, 1), 9000, "Salary", TransactionType.income))

        stats = DashboardService(session, 1).stats(date(2024, 3, 10))

        assert stats["total_balance_cents"] == 7000
        assert len(stats["weekly_data"]) == 7
        shares = {item["name"]: item["value"] for item in stats["expenses_breakdown"]}
        assert shares == {"Food": 75, "Travel": 25}
        assert [item["date"] for item in stats["recent_transactions"]][0] == (
            "2024-03-10T00:00:00"
        )
        assert stats["upcoming_bills"] == []
        assert stats["goals"] == []
