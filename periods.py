from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_at(self) -> datetime:
        return datetime.combine(self.end, time.max)


def add_months(d: date, count: int) -> date:
    """First day of the month ``count`` months away from ``d``."""
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_period(day: date) -> Period:
    first = day.replace(day=1)
    return Period("month", first, add_months(first, 1) - date.resolution)


def previous_month_period(day: date) -> Period:
    return month_period(add_months(day, -1))


def _parse_day(value: str) -> date:
    # accepts plain dates as well as full ISO timestamps
    return date.fromisoformat(value.strip()[:10])


def resolve_expense_window(
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    start_date = _parse_day(start) if start else add_months(today, -2)
    end_date = _parse_day(end) if end else month_period(today).end
    if start_date > end_date:
        raise ValueError("Start date must be before end date")
    slug = "custom" if start or end else "default"
    return Period(slug, start_date, end_date)


def last_seven_days(today: date) -> list[date]:
    """Calendar days ending with ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(6, -1, -1)]
