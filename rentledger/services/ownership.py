# rentledger/services/ownership.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import Contract, Installment, InstallmentItem, Organization


def must_get_org(db: Session, *, org_id: int) -> Organization:
    row = db.get(Organization, int(org_id))
    if not row:
        raise NotFoundError("office not found")
    return row


def must_get_contract(db: Session, *, org_id: int, contract_id: str) -> Contract:
    row = db.scalar(select(Contract).where(Contract.id == str(contract_id), Contract.org_id == int(org_id)))
    if not row:
        raise NotFoundError("contract not found")
    return row


def must_get_installment(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    for_update: bool = False,
) -> Installment:
    q = select(Installment).where(Installment.id == str(installment_id), Installment.org_id == int(org_id))
    if for_update:
        q = q.with_for_update()
    row = db.scalar(q)
    if not row:
        raise NotFoundError("installment not found")
    return row


def must_get_item(db: Session, *, org_id: int, installment_id: str, item_id: str) -> InstallmentItem:
    row = db.scalar(
        select(InstallmentItem).where(
            InstallmentItem.id == str(item_id),
            InstallmentItem.installment_id == str(installment_id),
            InstallmentItem.org_id == int(org_id),
        )
    )
    if not row:
        raise NotFoundError("installment item not found")
    return row
