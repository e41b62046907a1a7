import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError, ValidationError
from models import Category, TransactionType
from schemas import CategoryIn
from services import DEFAULT_CATEGORIES, CategoryService, seed_default_categories


def _seeded_session(engine) -> Session:
    session = Session(engine)
    seed_default_categories(session)
    session.commit()
    return session


def test_seeding_is_idempotent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        expected = sum(len(names) for names in DEFAULT_CATEGORIES.values())
        assert seed_default_categories(session) == expected
        session.commit()
        assert seed_default_categories(session) == 0
        total = session.scalar(select(func.count(Category.id)))
        assert total == expected


def test_duplicate_of_default_is_rejected_case_insensitive() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with _seeded_session(engine) as session:
        categories = CategoryService(session, 7)
        with pytest.raises(ValidationError):
            categories.create(CategoryIn(name="Food", type=TransactionType.expense))
        with pytest.raises(ValidationError):
            categories.create(CategoryIn(name="  fOOd ", type=TransactionType.expense))

        # same name under the other type is a different category
        food_income = categories.create(
            CategoryIn(name="Food", type=TransactionType.income)
        )
        assert food_income.user_id == 7
        assert food_income.is_default is False


def test_duplicate_custom_category_only_within_same_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with _seeded_session(engine) as session:
        CategoryService(session, 1).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )
        with pytest.raises(ValidationError):
            CategoryService(session, 1).create(
                CategoryIn(name="pets", type=TransactionType.expense)
            )
        other = CategoryService(session, 2).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )
        assert other.user_id == 2


def test_list_grouped_includes_defaults_and_own_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with _seeded_session(engine) as session:
        CategoryService(session, 1).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )
        CategoryService(session, 2).create(
            CategoryIn(name="Garden", type=TransactionType.expense)
        )

        grouped = CategoryService(session, 1).list_grouped()

        expense_names = [item["name"] for item in grouped["expense"]]
        assert "Pets" in expense_names
        assert "Garden" not in expense_names
        assert expense_names == sorted(expense_names)
        assert len(grouped["income"]) == len(DEFAULT_CATEGORIES[TransactionType.income])
        pets = next(item for item in grouped["expense"] if item["name"] == "Pets")
        assert pets["is_custom"] is True
        food = next(item for item in grouped["expense"] if item["name"] == "Food")
        assert food["is_custom"] is False


def test_default_category_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with _seeded_session(engine) as session:
        food = session.scalar(
            select(Category).where(
                Category.name == "Food", Category.type == TransactionType.expense
            )
        )
        for user_id in (1, 2, 99):
            with pytest.raises(ValidationError):
                CategoryService(session, user_id).delete(food.id)
        assert session.get(Category, food.id) is not None


def test_custom_category_deleted_only_by_owner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with _seeded_session(engine) as session:
        pets = CategoryService(session, 1).create(
            CategoryIn(name="Pets", type=TransactionType.expense)
        )
        with pytest.raises(NotFoundError):
            CategoryService(session, 2).delete(pets.id)

        CategoryService(session, 1).delete(pets.id)
        assert session.get(Category, pets.id) is None
