# rentledger/routers/installments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal, require_operator
from ..db import get_db
from ..schemas import (
    AgreementIn,
    InstallmentOut,
    InstallmentPageOut,
    LateFeeIn,
    LineItemOut,
    LineItemUpsert,
    MarkPaidIn,
    MarkPaidOut,
    NotificationOverrideIn,
    NotificationSentIn,
    NotificationSentOut,
    PaymentCreate,
    PaymentOut,
)
from ..services.installments import STATUS_ALL, get_installment, list_for_tenant, set_agreement_status
from ..services.line_items import LATE_FEE_LABEL, add_late_fee, delete_item, list_items, upsert_item
from ..services.notifications import log_notification_sent, set_installment_notification_override
from ..services.payments import list_installment_payments, mark_paid_without_receipt, record_payment

router = APIRouter(prefix="/installments", tags=["installments"])


@router.get("", response_model=InstallmentPageOut)
def list_installments(
    status: str = Query(default=STATUS_ALL),
    limit: int = Query(default=100, ge=1, le=500),
    cursor: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    page = list_for_tenant(db, org_id=p.org_id, status=status, limit=limit, cursor=cursor)
    return InstallmentPageOut(
        items=[InstallmentOut.model_validate(x) for x in page.items],
        next_cursor=page.next_cursor,
    )


@router.get("/{installment_id}", response_model=InstallmentOut)
def get_installment_endpoint(installment_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return get_installment(db, org_id=p.org_id, installment_id=installment_id)


# -----------------------------
# Line items
# -----------------------------
@router.get("/{installment_id}/items", response_model=list[LineItemOut])
def installment_items(installment_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return list_items(db, org_id=p.org_id, installment_id=installment_id)


@router.put("/{installment_id}/items", response_model=LineItemOut)
def upsert_installment_item(
    installment_id: str,
    payload: LineItemUpsert,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return upsert_item(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        type=payload.type,
        label=payload.label,
        amount=payload.amount,
        item_id=payload.id,
        actor_user_id=p.user_id,
    )


@router.delete("/{installment_id}/items/{item_id}", response_model=InstallmentOut)
def delete_installment_item(
    installment_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return delete_item(db, org_id=p.org_id, installment_id=installment_id, item_id=item_id, actor_user_id=p.user_id)


@router.post("/{installment_id}/late-fee", response_model=LineItemOut)
def late_fee(installment_id: str, payload: LateFeeIn, db: Session = Depends(get_db), p=Depends(require_operator)):
    return add_late_fee(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        amount=payload.amount,
        label=payload.label or LATE_FEE_LABEL,
        actor_user_id=p.user_id,
    )


# -----------------------------
# Payments
# -----------------------------
@router.get("/{installment_id}/payments", response_model=list[PaymentOut])
def installment_payments(installment_id: str, db: Session = Depends(get_db), p=Depends(get_principal)):
    return list_installment_payments(db, org_id=p.org_id, installment_id=installment_id)


@router.post("/{installment_id}/payments", response_model=PaymentOut)
def create_payment(
    installment_id: str,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return record_payment(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        amount=payload.amount,
        without_receipt=payload.without_receipt,
        method=payload.method,
        paid_at=payload.paid_at,
        receipt=payload.receipt.model_dump() if payload.receipt else None,
        note=payload.note,
        collected_by=payload.collected_by,
        actor_user_id=p.user_id,
    )


@router.post("/{installment_id}/mark-paid-without-receipt", response_model=MarkPaidOut)
def mark_paid(
    installment_id: str,
    payload: Optional[MarkPaidIn] = None,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    payload = payload or MarkPaidIn()
    payment = mark_paid_without_receipt(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        collected_by=payload.collected_by,
        note=payload.note,
        actor_user_id=p.user_id,
    )
    inst = get_installment(db, org_id=p.org_id, installment_id=installment_id)
    return MarkPaidOut(
        installment=InstallmentOut.model_validate(inst),
        payment=PaymentOut.model_validate(payment) if payment is not None else None,
    )


# -----------------------------
# Agreement + notifications
# -----------------------------
@router.post("/{installment_id}/agreement", response_model=InstallmentOut)
def agreement(installment_id: str, payload: AgreementIn, db: Session = Depends(get_db), p=Depends(require_operator)):
    return set_agreement_status(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        enabled=payload.enabled,
        note=payload.note,
        actor_user_id=p.user_id,
    )


@router.put("/{installment_id}/notification-override", response_model=InstallmentOut)
def notification_override(
    installment_id: str,
    payload: NotificationOverrideIn,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    return set_installment_notification_override(
        db, org_id=p.org_id, installment_id=installment_id, enabled=payload.enabled
    )


@router.post("/{installment_id}/notifications/sent", response_model=NotificationSentOut)
def notification_sent(
    installment_id: str,
    payload: NotificationSentIn,
    db: Session = Depends(get_db),
    p=Depends(require_operator),
):
    logged = log_notification_sent(
        db,
        org_id=p.org_id,
        installment_id=installment_id,
        notification_type=payload.notification_type,
        channel=payload.channel,
        audience=payload.audience,
        recipient=payload.recipient,
        on_day=payload.day,
        sent_by_user_id=p.user_id,
    )
    return NotificationSentOut(logged=logged)
