# rentledger/domain/notifications.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from ..config import settings
from .status import IN_AGREEMENT, PAID, DateLike, day_number

PRE_DUE_5 = "PRE_DUE_5"
POST_DUE_1 = "POST_DUE_1"
GUARANTOR_DUE_5 = "GUARANTOR_DUE_5"

AUDIENCE_TENANT = "TENANT"
AUDIENCE_GUARANTOR = "GUARANTOR"

CHANNELS = ("email", "whatsapp")


@dataclass(frozen=True)
class ReminderMessage:
    subject: str
    body: str
    whatsapp_text: str


@dataclass(frozen=True)
class DueReminder:
    installment_id: str
    audience: str
    due_type: str
    message: ReminderMessage


def _shift(d: DateLike, days: int) -> date:
    base = date(d.year, d.month, d.day)
    return base + timedelta(days=days)


def _same_day(a: DateLike, b: DateLike) -> bool:
    return day_number(a) == day_number(b)


def tenant_reminder_due_today(installment: Any, today: DateLike) -> Optional[str]:
    """
    PRE_DUE_5 five days before the due date, POST_DUE_1 the day after it
    (only while unpaid). Anything else: None.
    """
    due_date = getattr(installment, "due_date", None)
    if due_date is None:
        return None

    if _same_day(today, _shift(due_date, -int(settings.pre_due_reminder_days))):
        return PRE_DUE_5

    status = getattr(installment, "status", None)
    if _same_day(today, _shift(due_date, int(settings.post_due_reminder_days))) and status != PAID:
        return POST_DUE_1

    return None


def guarantor_escalation_due_today(installment: Any, today: DateLike) -> bool:
    """Calendar check only; callers exclude PAID / IN_AGREEMENT themselves."""
    due_date = getattr(installment, "due_date", None)
    if due_date is None:
        return False
    return _same_day(today, _shift(due_date, int(settings.guarantor_escalation_days)))


def notifications_enabled(contract_enabled: bool, override: Optional[bool]) -> bool:
    if override is not None:
        return bool(override)
    return bool(contract_enabled)


# -----------------------------
# Message rendering (single fixed locale)
# -----------------------------
def format_date(d: DateLike) -> str:
    return f"{d.day:02d}/{d.month:02d}/{d.year:04d}"


def format_amount(v: Any) -> str:
    """'.'-grouped thousands, ',' decimals only when there are cents."""
    amount = float(v or 0.0)
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    cents = int(round(amount * 100)) % 100
    whole = int(round(amount * 100)) // 100
    grouped = f"{whole:,}".replace(",", ".")
    out = f"{grouped},{cents:02d}" if cents else grouped
    return f"{sign}{settings.currency_symbol} {out}"


def _status_label(status: Optional[str]) -> str:
    return {
        "UPCOMING": "upcoming",
        "DUE_TODAY": "due today",
        "OVERDUE": "overdue",
        "IN_AGREEMENT": "in agreement",
        "PARTIAL": "partially paid",
        "PAID": "paid",
    }.get(status or "", "pending")


def build_tenant_message(installment: Any, contract_id: str, due_type: str) -> ReminderMessage:
    period = getattr(installment, "period", "")
    due_date = format_date(installment.due_date)
    amount = format_amount(getattr(installment, "due", 0.0))
    status = _status_label(getattr(installment, "status", None))

    if due_type == PRE_DUE_5:
        subject = f"Reminder: rent for {period} is due on {due_date}"
        lead = f"Your rent installment for period {period} falls due on {due_date}."
    else:
        subject = f"Overdue: rent for {period} was due on {due_date}"
        lead = f"Your rent installment for period {period} was due on {due_date} and is still {status}."

    body = "\n".join(
        [
            "Hello,",
            "",
            lead,
            f"Amount due: {amount}.",
            f"Contract: {contract_id}.",
            "",
            "If you already paid, please send us the receipt.",
        ]
    )
    whatsapp_text = f"{lead} Amount due: {amount}. Contract {contract_id}."
    return ReminderMessage(subject=subject, body=body, whatsapp_text=whatsapp_text)


def build_guarantor_message(installment: Any, contract_id: str) -> ReminderMessage:
    period = getattr(installment, "period", "")
    due_date = format_date(installment.due_date)
    amount = format_amount(getattr(installment, "due", 0.0))

    subject = f"Guarantor notice: unpaid rent for {period}"
    lead = (
        f"As guarantor of contract {contract_id}, we inform you that the rent installment "
        f"for period {period}, due on {due_date}, remains unpaid."
    )
    body = "\n".join(
        [
            "Hello,",
            "",
            lead,
            f"Outstanding amount: {amount}.",
            "",
            "Please get in touch with the tenant or with our office.",
        ]
    )
    whatsapp_text = f"{lead} Outstanding amount: {amount}."
    return ReminderMessage(subject=subject, body=body, whatsapp_text=whatsapp_text)


# -----------------------------
# Selection over a contract's installments
# -----------------------------
def tenant_reminders_due(
    *,
    contract_id: str,
    contract_enabled: bool,
    installments: Iterable[Any],
    today: DateLike,
) -> list[DueReminder]:
    out: list[DueReminder] = []
    for inst in installments:
        if not notifications_enabled(contract_enabled, getattr(inst, "notification_override", None)):
            continue
        if getattr(inst, "status", None) == PAID:
            continue
        due_type = tenant_reminder_due_today(inst, today)
        if due_type is None:
            continue
        out.append(
            DueReminder(
                installment_id=str(inst.id),
                audience=AUDIENCE_TENANT,
                due_type=due_type,
                message=build_tenant_message(inst, contract_id, due_type),
            )
        )
    return out


def guarantor_reminders_due(
    *,
    contract_id: str,
    contract_enabled: bool,
    has_guarantors: bool,
    installments: Iterable[Any],
    today: DateLike,
) -> list[DueReminder]:
    if not has_guarantors:
        return []

    out: list[DueReminder] = []
    for inst in installments:
        if not notifications_enabled(contract_enabled, getattr(inst, "notification_override", None)):
            continue
        if getattr(inst, "status", None) in (PAID, IN_AGREEMENT):
            continue
        if not guarantor_escalation_due_today(inst, today):
            continue
        out.append(
            DueReminder(
                installment_id=str(inst.id),
                audience=AUDIENCE_GUARANTOR,
                due_type=GUARANTOR_DUE_5,
                message=build_guarantor_message(inst, contract_id),
            )
        )
    return out
