from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator, Optional

from .domain import Cadence

Boundary = tuple[date, date]

_PERIODS_PER_YEAR: dict[Cadence, int] = {
    Cadence.WEEKLY: 52,
    Cadence.BI_WEEKLY: 26,
    Cadence.SEMI_MONTHLY: 24,
    Cadence.MONTHLY: 12,
    Cadence.QUARTERLY: 4,
    Cadence.ANNUAL: 1,
}

_DAYS_PER_YEAR = Decimal("365.25")
_AVERAGE_DAYS: dict[Cadence, Decimal] = {
    Cadence.WEEKLY: Decimal(7),
    Cadence.BI_WEEKLY: Decimal(14),
    Cadence.SEMI_MONTHLY: _DAYS_PER_YEAR / 24,
    Cadence.MONTHLY: _DAYS_PER_YEAR / 12,
    Cadence.QUARTERLY: _DAYS_PER_YEAR / 4,
    Cadence.ANNUAL: _DAYS_PER_YEAR,
}


def next_boundary(
    cadence: Cadence | str,
    anchor_date: date,
    since_date: Optional[date] = None,
) -> Boundary:
    """Return the (start, end) pair following ``since_date``.

    ``anchor_date`` is the income source's start date; the first period starts
    on it. Later periods start the day after ``since_date``, the end of the
    previously generated period. Both ends are inclusive.
    """

    cadence = Cadence.parse(cadence)
    start = since_date + timedelta(days=1) if since_date is not None else anchor_date

    if cadence is Cadence.WEEKLY:
        end = start + timedelta(days=6)
    elif cadence is Cadence.BI_WEEKLY:
        end = start + timedelta(days=13)
    elif cadence is Cadence.SEMI_MONTHLY:
        if start.day <= 15:
            end = start.replace(day=15)
        else:
            end = _month_end(start.year, start.month)
    elif cadence is Cadence.MONTHLY:
        end = _month_end(start.year, start.month)
    elif cadence is Cadence.QUARTERLY:
        index = start.month - 1 + 2
        end = _month_end(start.year + index // 12, index % 12 + 1)
    else:
        end = _next_anniversary(anchor_date, start) - timedelta(days=1)
    return start, end


def iter_boundaries(
    cadence: Cadence | str,
    anchor_date: date,
    since_date: Optional[date] = None,
) -> Iterator[Boundary]:
    """Yield consecutive, gap-free boundaries forever."""
    cadence = Cadence.parse(cadence)
    while True:
        start, end = next_boundary(cadence, anchor_date, since_date)
        yield start, end
        since_date = end


def boundaries_through(
    cadence: Cadence | str,
    anchor_date: date,
    since_date: Optional[date],
    today: date,
) -> list[Boundary]:
    """Boundaries needed so that the newest one ends on or after ``today``.

    Returns an empty list when ``since_date`` already covers ``today``.
    """
    if since_date is not None and since_date >= today:
        return []
    due: list[Boundary] = []
    for start, end in iter_boundaries(cadence, anchor_date, since_date):
        due.append((start, end))
        if end >= today:
            break
    return due


def periods_per_year(cadence: Cadence | str) -> int:
    return _PERIODS_PER_YEAR[Cadence.parse(cadence)]


def average_period_days(cadence: Cadence | str) -> Decimal:
    return _AVERAGE_DAYS[Cadence.parse(cadence)]


def pro_rate_factor(item_cadence: Cadence | str, income_cadence: Cadence | str) -> Decimal:
    """Scale an amount defined per ``item_cadence`` to one income period."""
    item = Cadence.parse(item_cadence)
    income = Cadence.parse(income_cadence)
    if item is income:
        return Decimal(1)
    return _AVERAGE_DAYS[income] / _AVERAGE_DAYS[item]


# --- Internal helpers --------------------------------------------------------

def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _anniversary(anchor: date, years: int) -> date:
    year = anchor.year + years
    try:
        return anchor.replace(year=year)
    except ValueError:
        # Feb 29 anchor in a non-leap year
        return date(year, 2, 28)


def _next_anniversary(anchor: date, start: date) -> date:
    candidate = _anniversary(anchor, start.year - anchor.year)
    if candidate <= start:
        candidate = _anniversary(anchor, start.year - anchor.year + 1)
    return candidate
