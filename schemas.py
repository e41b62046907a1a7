from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator

from config import get_settings
from models import AccountType, BillFrequency, TransactionType


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    """Turn a decimal amount such as ``"12,50"`` or ``"$12.50"`` into cents."""
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def _to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    tz = ZoneInfo(get_settings().timezone)
    return value.astimezone(tz).replace(tzinfo=None)


def _decimal_amount_to_cents(data: Any, *, allow_negative: bool) -> Any:
    # clients may send a decimal "amount" instead of integer "amount_cents"
    if not isinstance(data, dict) or data.get("amount_cents") is not None:
        return data
    amount = data.get("amount")
    if amount is None or amount == "":
        return data
    data = dict(data)
    data["amount_cents"] = parse_amount(str(amount), allow_negative=allow_negative)
    return data


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: AccountType
    balance_cents: int = 0


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


class TransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    # defaults to "now" in the service when omitted
    date: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_decimal_amount(cls, data: Any) -> Any:
        return _decimal_amount_to_cents(data, allow_negative=False)

    @field_validator("date")
    @classmethod
    def _local_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_local_naive(value)


class BillIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., gt=0)
    due_date: date
    category: str = Field(..., min_length=1, max_length=100)
    is_recurring: bool = False
    frequency: Optional[BillFrequency] = None
    notification_enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _accept_decimal_amount(cls, data: Any) -> Any:
        return _decimal_amount_to_cents(data, allow_negative=False)

    @model_validator(mode="after")
    def _frequency_matches_recurrence(self) -> "BillIn":
        if self.is_recurring and self.frequency is None:
            raise ValueError("Frequency is required for recurring bills")
        if not self.is_recurring:
            self.frequency = None
        return self


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount_cents: int = Field(..., ge=0)
    current_amount_cents: int = 0
    start_date: Optional[datetime] = None
    target_date: date
    category: str = Field(..., min_length=1, max_length=100)

    @field_validator("start_date")
    @classmethod
    def _local_start(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_local_naive(value)


class GoalUpdateIn(GoalIn):
    is_completed: Optional[bool] = None


class ContributionIn(BaseModel):
    amount_cents: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_decimal_amount(cls, data: Any) -> Any:
        return _decimal_amount_to_cents(data, allow_negative=True)
