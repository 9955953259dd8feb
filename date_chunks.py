"""
Date range helpers.

The Surrogate's Court search only accepts filing-date ranges inside a single
calendar month, so a user range (e.g. 01/15/2026 - 03/10/2026) is split into
month-sized chunks before searching.
"""

from datetime import date, datetime
from typing import List, Union

from dateutil.relativedelta import relativedelta

from errors import InvalidDateRange
from schemas import PORTAL_DATE_FORMAT, DateChunk

DateLike = Union[str, date]


def parse_date(value: DateLike) -> date:
    """Parse MM/DD/YYYY (or pass a date through)"""
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), PORTAL_DATE_FORMAT).date()
    except ValueError as e:
        raise InvalidDateRange(f"Dates must be in MM/DD/YYYY format, got {value!r}") from e


def format_date(value: date) -> str:
    return value.strftime(PORTAL_DATE_FORMAT)


def last_day_of_month(value: date) -> date:
    return value + relativedelta(day=31)


def split_date_range(date_from: DateLike, date_to: DateLike) -> List[DateChunk]:
    """
    Split a date range into calendar-month chunks.

    >>> [c.label() for c in split_date_range("01/15/2026", "03/10/2026")]
    ['01/15/2026-01/31/2026', '02/01/2026-02/28/2026', '03/01/2026-03/10/2026']
    """
    start = parse_date(date_from)
    end = parse_date(date_to)
    if start > end:
        raise InvalidDateRange(f"Start date {format_date(start)} is after end date {format_date(end)}")

    chunks = []
    current = start
    while current <= end:
        chunk_end = min(last_day_of_month(current), end)
        chunks.append(DateChunk(date_from=current, date_to=chunk_end))
        current = current.replace(day=1) + relativedelta(months=1)

    return chunks
