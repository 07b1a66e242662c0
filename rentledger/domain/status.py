# rentledger/domain/status.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from ..config import settings

# -----------------------------------------------------------------------------
# Installment status
# -----------------------------------------------------------------------------
# Date-driven states are a pure function of (due_date, today). Payment-driven
# states and the manual agreement flag are set by mutations and are never
# overwritten by the daily sweep.
#
# Two notions of "today" coexist:
#   - today_utc():   the scheduled sweep cuts over at the UTC day boundary.
#   - today_local(): interactive reads/mutations use the office's local day.
# Around midnight they can disagree by one day. That is expected; the next
# sweep converges stored status to the UTC view.
# -----------------------------------------------------------------------------

UPCOMING = "UPCOMING"
DUE_TODAY = "DUE_TODAY"
OVERDUE = "OVERDUE"
IN_AGREEMENT = "IN_AGREEMENT"
PARTIAL = "PARTIAL"
PAID = "PAID"

ALL_STATUSES = (UPCOMING, DUE_TODAY, OVERDUE, IN_AGREEMENT, PARTIAL, PAID)
DATE_DRIVEN = frozenset({UPCOMING, DUE_TODAY, OVERDUE})

DateLike = Union[date, datetime]


def day_number(value: DateLike) -> int:
    """year*10000 + month*100 + day; time of day is ignored."""
    return value.year * 10000 + value.month * 100 + value.day


def classify_due_date(due_date: DateLike, reference: DateLike) -> str:
    due_n = day_number(due_date)
    today_n = day_number(reference)
    if due_n > today_n:
        return UPCOMING
    if due_n == today_n:
        return DUE_TODAY
    return OVERDUE


def derive_status(
    *,
    total: float,
    paid: float,
    due_date: DateLike,
    reference: DateLike,
    current: Optional[str] = None,
) -> str:
    """
    Status after a mutation of totals.

    IN_AGREEMENT is kept until cleared explicitly; otherwise payment state
    wins over the calendar.
    """
    if current == IN_AGREEMENT:
        return IN_AGREEMENT
    if paid >= total:
        return PAID
    if paid > 0:
        return PARTIAL
    return classify_due_date(due_date, reference)


def is_valid_status(value: str) -> bool:
    return value in ALL_STATUSES


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def today_local(tz_name: Optional[str] = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.local_timezone)).date()
