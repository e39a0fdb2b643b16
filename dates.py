"""Calendar helpers for the DD.MM.YYYY dates stored in the loan file."""

from datetime import date, datetime, timedelta
from typing import Optional, Union

DATE_FORMAT = "%d.%m.%Y"

DateLike = Union[str, date]


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(text: str) -> date:
    """Parse a DD.MM.YYYY string. Raises ValueError on anything else."""
    return datetime.strptime(text.strip(), DATE_FORMAT).date()


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def today(clock: Optional[date] = None) -> date:
    return clock or date.today()


def add_days(value: DateLike, days: int) -> str:
    # timedelta rolls over month and year ends
    return format_date(_as_date(value) + timedelta(days=days))


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole days from start to end; negative when end comes first."""
    return (_as_date(end) - _as_date(start)).days
