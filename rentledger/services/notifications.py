# rentledger/services/notifications.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.notifications import (
    AUDIENCE_GUARANTOR,
    AUDIENCE_TENANT,
    CHANNELS,
    GUARANTOR_DUE_5,
    POST_DUE_1,
    PRE_DUE_5,
    DueReminder,
    guarantor_reminders_due,
    tenant_reminders_due,
)
from ..domain.status import today_local
from ..errors import TransientStoreError, ValidationError
from ..models import Contract, Installment, NotificationLog
from .installments import list_by_contract
from .ownership import must_get_contract, must_get_installment
from .tx import write_transaction

NOTIFICATION_TYPES = (PRE_DUE_5, POST_DUE_1, GUARANTOR_DUE_5)
AUDIENCES = (AUDIENCE_TENANT, AUDIENCE_GUARANTOR)


@dataclass(frozen=True)
class ReminderPreview:
    reminder: DueReminder
    recipients: dict[str, list[str]]  # channel -> recipients
    already_sent: bool


def day_key(d: date) -> str:
    return d.isoformat()


def resolve_tenant_recipients(contract: Contract) -> tuple[list[str], list[str]]:
    tenant = contract.tenant or {}
    email = str(tenant.get("email") or "").strip()
    whatsapp = str(tenant.get("whatsapp") or "").strip()
    return ([email] if email else []), ([whatsapp] if whatsapp else [])


def resolve_guarantor_recipients(contract: Contract) -> tuple[list[str], list[str]]:
    emails: list[str] = []
    whatsapps: list[str] = []
    for g in contract.guarantors or []:
        email = str(g.get("email") or "").strip()
        whatsapp = str(g.get("whatsapp") or "").strip()
        if email:
            emails.append(email)
        if whatsapp:
            whatsapps.append(whatsapp)
    return emails, whatsapps


def update_contract_notification_config(
    db: Session,
    *,
    org_id: int,
    contract_id: str,
    enabled: bool,
    actor_user_id: Optional[int] = None,
) -> Contract:
    with write_transaction(db):
        contract = must_get_contract(db, org_id=org_id, contract_id=contract_id)
        before = contract.model_dump()
        emails, whatsapps = resolve_tenant_recipients(contract)
        contract.set_notification_config(enabled=enabled, emails=emails, whatsapps=whatsapps)
        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="contract.notifications",
            entity_type="Contract",
            entity_id=contract.id,
            before=before,
            after=contract.model_dump(),
        )
    db.refresh(contract)
    return contract


def set_installment_notification_override(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    enabled: Optional[bool],
) -> Installment:
    """enabled=None drops the override so the contract config applies again."""
    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)
        inst.notification_override = None if enabled is None else bool(enabled)
    db.refresh(inst)
    return inst


def has_notification_sent(
    db: Session,
    *,
    installment_id: str,
    notification_type: str,
    channel: str,
    audience: str,
    recipient: str,
    on_day: str,
) -> bool:
    row = db.scalar(
        select(NotificationLog.id).where(
            NotificationLog.installment_id == str(installment_id),
            NotificationLog.notification_type == notification_type,
            NotificationLog.channel == channel,
            NotificationLog.audience == audience,
            NotificationLog.recipient == recipient,
            NotificationLog.day_key == on_day,
        )
    )
    return row is not None


def log_notification_sent(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    notification_type: str,
    channel: str,
    audience: str,
    recipient: str,
    on_day: Optional[date] = None,
    sent_by_user_id: Optional[int] = None,
) -> bool:
    """
    Records that a reminder went out. Returns False when the same
    (installment, type, channel, audience, recipient, day) was already logged.
    """
    if notification_type not in NOTIFICATION_TYPES:
        raise ValidationError(f"unknown notification type: {notification_type}")
    if channel not in CHANNELS:
        raise ValidationError(f"unknown channel: {channel}")
    if audience not in AUDIENCES:
        raise ValidationError(f"unknown audience: {audience}")
    recipient_value = (recipient or "").strip()
    if not recipient_value:
        raise ValidationError("recipient is required")

    must_get_installment(db, org_id=org_id, installment_id=installment_id)
    key = day_key(on_day or today_local())

    if has_notification_sent(
        db,
        installment_id=installment_id,
        notification_type=notification_type,
        channel=channel,
        audience=audience,
        recipient=recipient_value,
        on_day=key,
    ):
        return False

    db.add(
        NotificationLog(
            org_id=int(org_id),
            installment_id=str(installment_id),
            notification_type=notification_type,
            channel=channel,
            audience=audience,
            recipient=recipient_value,
            day_key=key,
            sent_by_user_id=sent_by_user_id,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientStoreError(f"storage error: {type(e).__name__}") from e
    return True


def reminders_due_today(
    db: Session,
    *,
    org_id: int,
    contract_id: str,
    today: Optional[date] = None,
) -> list[ReminderPreview]:
    """
    Tenant reminders and guarantor escalations that fall on `today` for one
    contract. Computed fresh on every call; the sent ledger only annotates.
    """
    reference = today or today_local()
    contract = must_get_contract(db, org_id=org_id, contract_id=contract_id)
    installments = list_by_contract(db, org_id=org_id, contract_id=contract_id)

    tenant_emails, tenant_whatsapps = resolve_tenant_recipients(contract)
    guarantor_emails, guarantor_whatsapps = resolve_guarantor_recipients(contract)

    due = tenant_reminders_due(
        contract_id=contract.id,
        contract_enabled=bool(contract.notification_enabled),
        installments=installments,
        today=reference,
    ) + guarantor_reminders_due(
        contract_id=contract.id,
        contract_enabled=bool(contract.notification_enabled),
        has_guarantors=bool(contract.guarantors),
        installments=installments,
        today=reference,
    )

    key = day_key(reference)
    out: list[ReminderPreview] = []
    for r in due:
        if r.audience == AUDIENCE_TENANT:
            recipients = {"email": tenant_emails, "whatsapp": tenant_whatsapps}
        else:
            recipients = {"email": guarantor_emails, "whatsapp": guarantor_whatsapps}

        targets = [(ch, rcpt) for ch, values in recipients.items() for rcpt in values]
        already_sent = bool(targets) and all(
            has_notification_sent(
                db,
                installment_id=r.installment_id,
                notification_type=r.due_type,
                channel=ch,
                audience=r.audience,
                recipient=rcpt,
                on_day=key,
            )
            for ch, rcpt in targets
        )
        out.append(ReminderPreview(reminder=r, recipients=recipients, already_sent=already_sent))
    return out
