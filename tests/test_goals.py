from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError, ValidationError
from models import Goal, Transaction, TransactionType
from schemas import GoalIn
from services import GoalService


def _goal(session: Session, user_id: int = 1, **overrides) -> Goal:
    fields = {
        "name": "Vacation",
        "target_amount_cents": 10_000,
        "target_date": date(2024, 12, 31),
        "category": "Travel",
    }
    fields.update(overrides)
    return GoalService(session, user_id).create(GoalIn(**fields))


def test_contribute_increments_without_completing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        goal = _goal(session)
        goals = GoalService(session, 1)

        after = goals.contribute(goal.id, 2_500)
        assert after.current_amount_cents == 2_500
        assert after.is_completed is False

        after = goals.contribute(goal.id, 9_000)
        assert after.current_amount_cents == 11_500
        assert after.is_completed is False
        assert after.progress == 115

        after = goals.contribute(goal.id, -1_500)
        assert after.current_amount_cents == 10_000

        assert session.scalars(select(Transaction)).all() == []


def test_contribute_requires_amount_and_ownership() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        goal = _goal(session)

        with pytest.raises(ValidationError):
            GoalService(session, 1).contribute(goal.id, None)
        with pytest.raises(NotFoundError):
            GoalService(session, 2).contribute(goal.id, 100)
        with pytest.raises(NotFoundError):
            GoalService(session, 1).contribute(goal.id + 1, 100)

        assert GoalService(session, 1).get(goal.id).current_amount_cents == 0


def test_progress_latches_completion_and_books_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        goal = _goal(session, current_amount_cents=4_000)
        goals = GoalService(session, 1)

        after, txn = goals.progress(goal.id, 3_000, now=datetime(2024, 5, 1, 12, 0))
        assert after.current_amount_cents == 7_000
        assert after.is_completed is False
        assert after.progress == 70

        after, txn = goals.progress(goal.id, 3_000)
        assert after.current_amount_cents == 10_000
        assert after.is_completed is True

        # withdrawing below the target never clears the latch
        after = goals.contribute(goal.id, -5_000)
        assert after.current_amount_cents == 5_000
        assert after.is_completed is True

        txns = session.scalars(select(Transaction).order_by(Transaction.id)).all()
        assert len(txns) == 2
        assert txns[0].amount_cents == 3_000
        assert txns[0].type == TransactionType.expense
        assert txns[0].category == "Travel"
        assert txns[0].description == "Contribution to goal: Vacation"
        assert txns[0].date == datetime(2024, 5, 1, 12, 0)


def test_progress_rejects_non_positive_amount() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        goal = _goal(session)
        goals = GoalService(session, 1)

        with pytest.raises(ValidationError):
            goals.progress(goal.id, 0)
        with pytest.raises(ValidationError):
            goals.progress(goal.id, None)
        with pytest.raises(ValidationError):
            goals.progress(goal.id, -50)
        with pytest.raises(NotFoundError):
            GoalService(session, 2).progress(goal.id, 100)

        assert session.scalars(select(Transaction)).all() == []
        assert goals.get(goal.id).current_amount_cents == 0


def test_progress_for_zero_target_is_zero() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        goal = _goal(session, target_amount_cents=0, current_amount_cents=500)
        assert goal.progress == 0
        assert goal.to_dict()["progress"] == 0


def test_active_goals_exclude_completed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        done = _goal(session, name="Laptop", target_amount_cents=100)
        open_goal = _goal(session, name="House", target_date=date(2030, 1, 1))
        GoalService(session, 1).progress(done.id, 100)

        assert [goal.id for goal in GoalService(session, 1).active()] == [open_goal.id]
        assert GoalService(session, 2).active() == []
