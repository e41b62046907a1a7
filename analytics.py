"""In-process aggregation over transactions that were already loaded.

Every function here is pure: callers fetch the rows (scoped to one user and,
where it matters, one window) and pass them in. Amounts are integer cents.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Sequence

from models import Transaction, TransactionType, round_half_up
from periods import last_seven_days

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def _expenses(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [txn for txn in transactions if txn.type == TransactionType.expense]


def _month_start(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def totals_by_category(transactions: Iterable[Transaction]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for txn in transactions:
        totals[txn.category] = totals.get(txn.category, 0) + txn.amount_cents
    return totals


def monthly_totals(transactions: Iterable[Transaction]) -> dict[datetime, int]:
    totals: dict[datetime, int] = {}
    for txn in _expenses(transactions):
        key = _month_start(txn.date)
        totals[key] = totals.get(key, 0) + txn.amount_cents
    return totals


def monthly_expenses(transactions: Iterable[Transaction]) -> list[dict[str, object]]:
    return [
        {"month": month.isoformat(), "amount_cents": amount}
        for month, amount in monthly_totals(transactions).items()
    ]


def category_breakdown(transactions: Iterable[Transaction]) -> list[dict[str, object]]:
    totals = totals_by_category(_expenses(transactions))
    return [{"name": name, "value_cents": value} for name, value in totals.items()]


def total_expenses(transactions: Iterable[Transaction]) -> int:
    return sum(txn.amount_cents for txn in _expenses(transactions))


def average_monthly_expense(transactions: Sequence[Transaction]) -> float:
    months = len(monthly_totals(transactions)) or 1
    return total_expenses(transactions) / months


def highest_monthly_expense(transactions: Iterable[Transaction]) -> int:
    return max(monthly_totals(transactions).values(), default=0)


def most_frequent_category(transactions: Iterable[Transaction]) -> str:
    counts: dict[str, int] = {}
    for txn in _expenses(transactions):
        counts[txn.category] = counts.get(txn.category, 0) + 1
    if not counts:
        return ""
    # max() keeps the first of equal counts, i.e. the category seen first
    return max(counts.items(), key=lambda item: item[1])[0]


def expense_report(transactions: Sequence[Transaction]) -> dict[str, object]:
    """Everything the expense analytics view shows for one window."""
    return {
        "monthly_expenses": monthly_expenses(transactions),
        "category_breakdown": category_breakdown(transactions),
        "total_expenses_cents": total_expenses(transactions),
        "average_expense_cents": average_monthly_expense(transactions),
        "highest_expense_cents": highest_monthly_expense(transactions),
        "most_frequent_category": most_frequent_category(transactions),
    }


def weekly_comparison(
    transactions: Iterable[Transaction], today: date
) -> list[dict[str, object]]:
    days = last_seven_days(today)
    income = {day: 0 for day in days}
    expense = {day: 0 for day in days}
    for txn in transactions:
        day = txn.date.date()
        if day not in income:
            continue
        if txn.type == TransactionType.income:
            income[day] += txn.amount_cents
        else:
            expense[day] += txn.amount_cents
    return [
        {
            "day": WEEKDAY_NAMES[day.weekday()],
            "date": day.isoformat(),
            "income_cents": income[day],
            "expense_cents": expense[day],
        }
        for day in days
    ]


def category_trends(
    current: Iterable[Transaction], previous: Iterable[Transaction]
) -> list[dict[str, object]]:
    current_totals = totals_by_category(_expenses(current))
    previous_totals = totals_by_category(_expenses(previous))
    trends = []
    for name, amount in current_totals.items():
        before = previous_totals.get(name, 0)
        if before == 0:
            trend = 100
        else:
            trend = round_half_up((amount - before) / before * 100)
        trends.append({"name": name, "amount_cents": amount, "trend": trend})
    return trends


def expense_shares(transactions: Iterable[Transaction]) -> list[dict[str, object]]:
    totals = totals_by_category(_expenses(transactions))
    overall = sum(totals.values())
    if not overall:
        return []
    return [
        {"name": name, "value": round_half_up(value / overall * 100)}
        for name, value in totals.items()
    ]


def net_balance(transactions: Iterable[Transaction]) -> int:
    balance = 0
    for txn in transactions:
        if txn.type == TransactionType.income:
            balance += txn.amount_cents
        else:
            balance -= txn.amount_cents
    return balance


def recent(transactions: Iterable[Transaction], limit: int = 5) -> list[Transaction]:
    return sorted(transactions, key=lambda txn: txn.date, reverse=True)[:limit]


def summary_stats(transactions: Sequence[Transaction]) -> dict[str, object]:
    income = sum(
        txn.amount_cents for txn in transactions if txn.type == TransactionType.income
    )
    expenses = total_expenses(transactions)
    return {
        "total_income_cents": income,
        "total_expenses_cents": expenses,
        "balance_cents": income - expenses,
        "category_totals": totals_by_category(transactions),
        "recent_transactions": [txn.to_dict() for txn in recent(transactions)],
    }
