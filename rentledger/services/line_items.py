# rentledger/services/line_items.py
from __future__ import annotations

import math
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.status import today_local
from ..errors import ValidationError
from ..models import Installment, InstallmentItem
from .installments import apply_totals
from .ownership import must_get_installment, must_get_item
from .tx import write_transaction

RENT = "rent"
EXPENSES = "expenses"
BREAKAGE = "breakage"
SERVICES = "services"
LATE_FEE = "late-fee"
ADJUSTMENT = "adjustment"
DISCOUNT = "discount"
OTHER = "other"

ITEM_TYPES = (RENT, EXPENSES, BREAKAGE, SERVICES, LATE_FEE, ADJUSTMENT, DISCOUNT, OTHER)

LATE_FEE_LABEL = "Late fee"


def normalize_item_amount(item_type: str, amount: float) -> float:
    """
    Discounts are stored negative whatever sign the caller used; every other
    type must be strictly positive.
    """
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("amount must be a number")
    if not math.isfinite(value) or value == 0:
        raise ValidationError("amount must be non-zero")

    if item_type == DISCOUNT:
        return -abs(value)
    if value <= 0:
        raise ValidationError("amount must be greater than 0")
    return value


def _recompute(db: Session, inst: Installment, *, reference: date) -> None:
    db.flush()
    total = db.scalar(
        select(func.coalesce(func.sum(InstallmentItem.amount), 0.0)).where(
            InstallmentItem.installment_id == inst.id
        )
    )
    total = round(float(total or 0.0), 2)
    if total < 0:
        raise ValidationError("discounts cannot exceed the other items of the installment")
    apply_totals(inst, total=total, paid=float(inst.paid or 0.0), reference=reference)


def list_items(db: Session, *, org_id: int, installment_id: str) -> list[InstallmentItem]:
    must_get_installment(db, org_id=org_id, installment_id=installment_id)
    q = (
        select(InstallmentItem)
        .where(InstallmentItem.installment_id == str(installment_id), InstallmentItem.org_id == int(org_id))
        .order_by(InstallmentItem.created_at.asc(), InstallmentItem.id.asc())
    )
    return list(db.scalars(q).all())


def upsert_item(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    type: str,
    label: str,
    amount: float,
    item_id: Optional[str] = None,
    actor_user_id: Optional[int] = None,
    today: Optional[date] = None,
) -> InstallmentItem:
    item_type = (type or "").strip().lower()
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"unknown item type: {type}")

    label_value = (label or "").strip()
    if not label_value:
        raise ValidationError("label is required")

    value = normalize_item_amount(item_type, amount)
    reference = today or today_local()

    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)

        if item_id:
            item = must_get_item(db, org_id=org_id, installment_id=inst.id, item_id=item_id)
            before = item.model_dump()
            if (item.type == RENT) != (item_type == RENT):
                raise ValidationError("the rent item type cannot be changed")
            item.type = item_type
            item.label = label_value
            item.amount = value
            action = "installment_item.update"
        else:
            if item_type == RENT:
                raise ValidationError("the rent item is created by the system")
            before = None
            item = InstallmentItem(
                org_id=int(org_id),
                installment_id=inst.id,
                type=item_type,
                label=label_value,
                amount=value,
            )
            db.add(item)
            action = "installment_item.create"

        _recompute(db, inst, reference=reference)

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action=action,
            entity_type="InstallmentItem",
            entity_id=item.id,
            before=before,
            after=item.model_dump(),
        )

    db.refresh(item)
    return item


def delete_item(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    item_id: str,
    actor_user_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Installment:
    reference = today or today_local()

    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)
        item = must_get_item(db, org_id=org_id, installment_id=inst.id, item_id=item_id)
        if item.type == RENT:
            raise ValidationError("the rent item cannot be deleted")

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="installment_item.delete",
            entity_type="InstallmentItem",
            entity_id=item.id,
            before=item.model_dump(),
            after=None,
        )
        db.delete(item)
        _recompute(db, inst, reference=reference)

    db.refresh(inst)
    return inst


def add_late_fee(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    amount: float,
    label: str = LATE_FEE_LABEL,
    actor_user_id: Optional[int] = None,
    today: Optional[date] = None,
) -> InstallmentItem:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("late fee amount must be a number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("late fee amount must be greater than 0")

    return upsert_item(
        db,
        org_id=org_id,
        installment_id=installment_id,
        type=LATE_FEE,
        label=label,
        amount=value,
        actor_user_id=actor_user_id,
        today=today,
    )
