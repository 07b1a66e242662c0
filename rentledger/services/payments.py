# rentledger/services/payments.py
from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.status import PAID, PARTIAL
from ..errors import ValidationError
from ..models import Payment
from .ownership import must_get_contract, must_get_installment, must_get_org
from .tx import write_transaction

PAYMENT_METHODS = ("cash", "transfer", "card", "other")

DEFAULT_NO_RECEIPT_NOTE = "Marked paid without receipt"


def _money(v: float) -> float:
    return round(float(v or 0.0), 2)


def _parse_paid_at(v: Any) -> datetime:
    if v is None or v == "":
        return datetime.utcnow()
    if isinstance(v, datetime):
        return v
    try:
        return datetime.fromisoformat(str(v))
    except ValueError:
        raise ValidationError("paid_at is not a valid date")


def _receipt_json(receipt: Optional[dict[str, Any]]) -> Optional[str]:
    if not receipt:
        return None
    return json.dumps(
        {
            "name": str(receipt.get("name") or ""),
            "path": str(receipt.get("path") or ""),
            "url": str(receipt.get("url") or ""),
        },
        sort_keys=True,
    )


def record_payment(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    amount: float,
    without_receipt: bool = False,
    method: str = "other",
    paid_at: Any = None,
    receipt: Optional[dict[str, Any]] = None,
    note: Optional[str] = None,
    collected_by: Optional[str] = None,
    actor_user_id: Optional[int] = None,
) -> Payment:
    """
    Appends a payment and moves the installment to PARTIAL or PAID.

    paid accumulates the real amounts (it may exceed total; the surplus is the
    installment's credit). without_receipt raises the unverified-payments
    flag, which stays set for the life of the installment.
    """
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("payment amount must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("payment amount must be greater than 0")

    method_value = (method or "").strip().lower()
    if method_value not in PAYMENT_METHODS:
        raise ValidationError(f"unknown payment method: {method}")

    paid_at_value = _parse_paid_at(paid_at)
    note_value = (note or "").strip() or None

    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)
        before = inst.model_dump()

        new_paid = _money(float(inst.paid or 0.0) + value)
        new_due = max(_money(float(inst.total or 0.0) - new_paid), 0.0)

        inst.paid = new_paid
        inst.due = new_due
        inst.status = PAID if new_due == 0 else PARTIAL
        if without_receipt:
            inst.has_unverified_payments = True

        payment = Payment(
            org_id=int(org_id),
            contract_id=inst.contract_id,
            installment_id=inst.id,
            amount=_money(value),
            paid_at=paid_at_value,
            method=method_value,
            collected_by=(collected_by or "").strip() or None,
            without_receipt=bool(without_receipt),
            receipt_json=None if without_receipt else _receipt_json(receipt),
            note=note_value,
        )
        db.add(payment)
        db.flush()

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="installment.payment",
            entity_type="Installment",
            entity_id=inst.id,
            before=before,
            after={**inst.model_dump(), "payment_id": payment.id},
        )

    db.refresh(payment)
    return payment


def mark_paid_without_receipt(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    collected_by: Optional[str] = None,
    note: Optional[str] = None,
    actor_user_id: Optional[int] = None,
) -> Optional[Payment]:
    """
    Settles the outstanding balance in one unverified payment.

    Returns the payment, or None when nothing was outstanding (the installment
    is still marked PAID and flagged).
    """
    note_value = (note or "").strip() or DEFAULT_NO_RECEIPT_NOTE

    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)
        total = float(inst.total or 0.0)
        if not math.isfinite(total) or total <= 0:
            raise ValidationError("installment total must be greater than 0 to mark it paid")

        before = inst.model_dump()
        paid_prev = float(inst.paid or 0.0)
        missing = max(_money(total - paid_prev), 0.0)

        inst.paid = _money(paid_prev + missing)
        inst.due = 0.0
        inst.status = PAID
        inst.has_unverified_payments = True

        payment: Optional[Payment] = None
        if missing > 0:
            payment = Payment(
                org_id=int(org_id),
                contract_id=inst.contract_id,
                installment_id=inst.id,
                amount=missing,
                paid_at=datetime.utcnow(),
                method="other",
                collected_by=(collected_by or "").strip() or None,
                without_receipt=True,
                note=note_value,
            )
            db.add(payment)
            db.flush()

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="installment.mark_paid_without_receipt",
            entity_type="Installment",
            entity_id=inst.id,
            before=before,
            after={**inst.model_dump(), "payment_id": payment.id if payment else None},
        )

    if payment is not None:
        db.refresh(payment)
    return payment


def list_installment_payments(db: Session, *, org_id: int, installment_id: str) -> list[Payment]:
    must_get_installment(db, org_id=org_id, installment_id=installment_id)
    q = (
        select(Payment)
        .where(Payment.org_id == int(org_id), Payment.installment_id == str(installment_id))
        .order_by(Payment.paid_at.asc(), Payment.created_at.asc())
    )
    return list(db.scalars(q).all())


def list_payments(
    db: Session,
    *,
    org_id: int,
    contract_id: Optional[str] = None,
    limit: int = 500,
) -> list[Payment]:
    """Office-wide payments view, newest first."""
    must_get_org(db, org_id=org_id)
    q = select(Payment).where(Payment.org_id == int(org_id))
    if contract_id is not None:
        must_get_contract(db, org_id=org_id, contract_id=contract_id)
        q = q.where(Payment.contract_id == str(contract_id))
    q = q.order_by(desc(Payment.paid_at)).limit(int(limit))
    return list(db.scalars(q).all())
