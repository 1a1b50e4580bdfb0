import calendar
import datetime
import math
from typing import Iterable, Iterator
from zoneinfo import ZoneInfo

from rentals.core.config import settings


def get_month_dates(year: int, month: int) -> list[datetime.date]:
    _, days_in_month = calendar.monthrange(year, month)
    return [
        datetime.date(year, month, day)
        for day in range(1, days_in_month + 1)
    ]


def iter_dates(start: datetime.date, end: datetime.date) -> Iterator[datetime.date]:
    """Yield every date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += datetime.timedelta(days=1)


def business_today() -> datetime.date:
    """Today's date in the marketplace's business timezone."""
    return datetime.datetime.now(ZoneInfo(settings.business_timezone)).date()


def is_past(day: datetime.date, today: datetime.date) -> bool:
    return day < today


def duration_days(start: datetime.date, end: datetime.date) -> int:
    """
    Number of billable days for a rental window.

    max(1, ceil((end - start) / 1 day)); a same-day rental is one day.
    """
    seconds = abs((end - start).total_seconds())
    return max(1, math.ceil(seconds / 86400))


def unique_sorted(dates: Iterable[datetime.date]) -> list[datetime.date]:
    return sorted(set(dates))
