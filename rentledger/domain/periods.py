# rentledger/domain/periods.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from ..errors import ValidationError

KEY_SEPARATOR = "__"


@dataclass(frozen=True)
class Period:
    year: int
    month: int
    key: str  # "YYYY-MM"


def period_key(year: int, month: int) -> str:
    return f"{int(year):04d}-{int(month):02d}"


def parse_period(key: str) -> Period:
    try:
        y, m = [int(x) for x in str(key).split("-")]
    except ValueError:
        raise ValidationError(f"invalid period key: {key!r}")
    if not 1 <= m <= 12:
        raise ValidationError(f"invalid period key: {key!r}")
    return Period(year=y, month=m, key=period_key(y, m))


def as_date(v: Any) -> Optional[date]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v)[:10])
    except ValueError:
        return None


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(int(year), int(month))[1]


def clamp_due_date(year: int, month: int, due_day: int) -> date:
    """
    Due date for a billing month.

    The configured day is clamped into [1, last day of month], so a contract
    billed on the 31st falls due on the 28th/29th/30th of shorter months and
    never rolls into the next month.
    """
    last_day = days_in_month(year, month)
    safe_day = min(max(int(due_day), 1), last_day)
    return date(int(year), int(month), safe_day)


def month_periods(start_date: date, end_date: date) -> list[Period]:
    """
    Every calendar month from start_date's month through end_date's month,
    inclusive. A contract touching part of a month bills that whole month.
    """
    s = as_date(start_date)
    e = as_date(end_date)
    if s is None or e is None:
        raise ValidationError("start_date and end_date are required")
    if e < s:
        raise ValidationError("end_date cannot be before start_date")

    year, month = s.year, s.month
    periods: list[Period] = []
    while (year, month) <= (e.year, e.month):
        periods.append(Period(year=year, month=month, key=period_key(year, month)))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return periods


def installment_key(contract_id: str, period: str) -> str:
    return f"{contract_id}{KEY_SEPARATOR}{period}"
