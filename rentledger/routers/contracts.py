# rentledger/routers/contracts.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..config import settings
from ..db import get_db
from ..models import Contract
from ..schemas import (
    ContractCreate,
    ContractOut,
    ContractPdfIn,
    GenerateResultOut,
    InstallmentOut,
    NotificationConfigIn,
    ReminderOut,
)
from ..services.contract_lifecycle import attach_contract_pdf, create_contract, on_contract_created
from ..services.installments import ensure_installments, list_by_contract
from ..services.notifications import reminders_due_today, update_contract_notification_config
from ..services.ownership import must_get_contract

log = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts", tags=["contracts"])


def _dispatch_contract_created(db: Session, *, org_id: int, contract_id: str) -> None:
    """Worker when a broker is configured, inline otherwise."""
    if settings.celery_broker_url:
        from ..workers.installment_tasks import on_contract_created_task

        on_contract_created_task.delay(int(org_id), str(contract_id))
        log.info("installment generation enqueued", extra={"org_id": int(org_id), "contract_id": str(contract_id)})
        return
    on_contract_created(db, org_id=org_id, contract_id=contract_id)


@router.post("", response_model=ContractOut)
def create_contract_endpoint(payload: ContractCreate, db: Session = Depends(get_db), p=Depends(require_operator)):
    row = create_contract(db, org_id=p.org_id, actor_user_id=p.user_id, payload=payload.model_dump())
    _dispatch_contract_created(db, org_id=p.org_id, contract_id=row.id)
    db.refresh(row)
    return row


@router.get("", response_model=list[ContractOut])
def list_contracts(
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Contract).where(Contract.org_id == p.org_id).order_by(desc(Contract.created_at)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/{contract_id}", response_model=ContractOut)
def get_contract(contract_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return must_get_contract(db, org_id=p.org_id, contract_id=contract_id)


@router.post("/{contract_id}/installments/generate", response_model=GenerateResultOut)
def generate_installments(contract_id: str, db: Session = Depends(get_db), p=Depends(require_operator)):
    """Lazy generation for contracts created before the trigger existed; idempotent."""
    r = ensure_installments(db, org_id=p.org_id, contract_id=contract_id)
    return GenerateResultOut(created=r.created, skipped=r.skipped, installment_ids=r.installment_ids)


@router.get("/{contract_id}/installments", response_model=list[InstallmentOut])
def contract_installments(contract_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return list_by_contract(db, org_id=p.org_id, contract_id=contract_id)


@router.patch("/{contract_id}/notifications", response_model=ContractOut)
def update_notifications(
    contract_id: str,
    payload: NotificationConfigIn,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return update_contract_notification_config(
        db,
        org_id=p.org_id,
        contract_id=contract_id,
        enabled=payload.enabled,
        actor_user_id=p.user_id,
    )


@router.patch("/{contract_id}/pdf", response_model=ContractOut)
def attach_pdf(
    contract_id: str,
    payload: ContractPdfIn,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return attach_contract_pdf(
        db,
        org_id=p.org_id,
        contract_id=contract_id,
        path=payload.path,
        download_url=payload.download_url,
        actor_user_id=p.user_id,
    )


@router.get("/{contract_id}/reminders", response_model=list[ReminderOut])
def contract_reminders(contract_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    out: list[ReminderOut] = []
    for preview in reminders_due_today(db, org_id=p.org_id, contract_id=contract_id):
        r = preview.reminder
        out.append(
            ReminderOut(
                installment_id=r.installment_id,
                audience=r.audience,
                due_type=r.due_type,
                message={
                    "subject": r.message.subject,
                    "body": r.message.body,
                    "whatsapp_text": r.message.whatsapp_text,
                },
                recipients=preview.recipients,
                already_sent=preview.already_sent,
            )
        )
    return out
