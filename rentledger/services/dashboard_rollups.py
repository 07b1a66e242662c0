# rentledger/services/dashboard_rollups.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..domain.periods import parse_period
from ..domain.status import ALL_STATUSES, is_valid_status
from ..errors import ValidationError
from ..models import Installment
from .ownership import must_get_contract, must_get_org


@dataclass(frozen=True)
class InstallmentRollup:
    installments: int
    total: float
    paid: float
    due: float
    status_counts: dict[str, int]
    unverified_payments: int


def _filters(
    *,
    org_id: int,
    contract_id: Optional[str],
    status: Optional[str],
    period_from: Optional[str],
    period_to: Optional[str],
) -> list:
    conds = [Installment.org_id == int(org_id)]
    if contract_id:
        conds.append(Installment.contract_id == str(contract_id))
    if status:
        if not is_valid_status(status):
            raise ValidationError(f"unknown status: {status}")
        conds.append(Installment.status == status)
    if period_from:
        conds.append(Installment.period >= parse_period(period_from).key)
    if period_to:
        conds.append(Installment.period <= parse_period(period_to).key)
    return conds


def installment_rollup(
    db: Session,
    *,
    org_id: int,
    contract_id: Optional[str] = None,
    status: Optional[str] = None,
    period_from: Optional[str] = None,
    period_to: Optional[str] = None,
) -> InstallmentRollup:
    """
    Office dashboard cards: summed total/paid/due and a count per status over
    the filtered installments. Sums are taken as stored.
    """
    must_get_org(db, org_id=org_id)
    if contract_id:
        must_get_contract(db, org_id=org_id, contract_id=contract_id)

    conds = _filters(
        org_id=org_id,
        contract_id=contract_id,
        status=status,
        period_from=period_from,
        period_to=period_to,
    )

    n, total, paid, due, unverified = db.execute(
        select(
            func.count(Installment.id),
            func.coalesce(func.sum(Installment.total), 0.0),
            func.coalesce(func.sum(Installment.paid), 0.0),
            func.coalesce(func.sum(Installment.due), 0.0),
            func.coalesce(func.sum(case((Installment.has_unverified_payments.is_(True), 1), else_=0)), 0),
        ).where(*conds)
    ).one()

    status_counts = {s: 0 for s in ALL_STATUSES}
    for st, cnt in db.execute(
        select(Installment.status, func.count(Installment.id)).where(*conds).group_by(Installment.status)
    ).all():
        status_counts[str(st)] = int(cnt)

    return InstallmentRollup(
        installments=int(n or 0),
        total=round(float(total or 0.0), 2),
        paid=round(float(paid or 0.0), 2),
        due=round(float(due or 0.0), 2),
        status_counts=status_counts,
        unverified_payments=int(unverified or 0),
    )
