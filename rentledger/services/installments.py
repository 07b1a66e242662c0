# rentledger/services/installments.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.periods import as_date, clamp_due_date, installment_key, month_periods
from ..domain.status import (
    IN_AGREEMENT,
    classify_due_date,
    derive_status,
    is_valid_status,
    today_local,
)
from ..errors import ConflictError, TransientStoreError, ValidationError
from ..models import Contract, Installment, InstallmentItem
from .ownership import must_get_contract, must_get_installment, must_get_org
from .tx import write_transaction

log = logging.getLogger(__name__)

RENT_ITEM_LABEL = "Rent"
STATUS_ALL = "ALL"


@dataclass
class GenerateResult:
    created: int = 0
    skipped: int = 0
    installment_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class InstallmentPage:
    items: list[Installment]
    next_cursor: Optional[str]


def _money(v: float) -> float:
    return round(float(v or 0.0), 2)


def apply_totals(inst: Installment, *, total: float, paid: float, reference: date) -> None:
    """
    Writes total/paid/due and re-derives status.

    due is clamped at zero; paid keeps the real sum so an overpayment shows up
    as Installment.credit.
    """
    inst.total = _money(total)
    inst.paid = _money(paid)
    inst.due = max(_money(inst.total - inst.paid), 0.0)
    inst.status = derive_status(
        total=inst.total,
        paid=inst.paid,
        due_date=inst.due_date,
        reference=reference,
        current=inst.status,
    )


# -----------------------------
# Generation
# -----------------------------
def _commit_new_installment(db: Session, iid: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"installment {iid} already exists") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise TransientStoreError(f"storage error: {type(e).__name__}") from e


def generate_for_contract(
    db: Session,
    *,
    org_id: int,
    contract: Contract,
    today: Optional[date] = None,
) -> GenerateResult:
    """
    Materializes one installment per calendar month of the contract.

    Existing rows (same contract + period) are never touched. Each installment
    and its seed rent item commit on their own; losing an insert race to a
    concurrent generator counts as a skip.
    """
    periods = month_periods(contract.start_date, contract.end_date)
    due_day = max(int(contract.due_day or 1), 1)
    rent = _money(contract.rent_amount)
    reference = today or today_local()

    out = GenerateResult()
    for p in periods:
        iid = installment_key(contract.id, p.key)
        if db.get(Installment, iid) is not None:
            out.skipped += 1
            continue

        due_date = clamp_due_date(p.year, p.month, due_day)
        db.add(
            Installment(
                id=iid,
                org_id=int(org_id),
                contract_id=contract.id,
                period=p.key,
                due_date=due_date,
                status=classify_due_date(due_date, reference),
                total=rent,
                paid=0.0,
                due=rent,
            )
        )
        db.add(
            InstallmentItem(
                org_id=int(org_id),
                installment_id=iid,
                type="rent",
                label=RENT_ITEM_LABEL,
                amount=rent,
            )
        )

        try:
            _commit_new_installment(db, iid)
        except ConflictError:
            out.skipped += 1
            continue

        out.created += 1
        out.installment_ids.append(iid)

    return out


def ensure_installments(
    db: Session,
    *,
    org_id: int,
    contract_id: str,
    today: Optional[date] = None,
) -> GenerateResult:
    """On-demand generation for an existing contract (same rules as the trigger)."""
    contract = must_get_contract(db, org_id=org_id, contract_id=contract_id)
    if as_date(contract.start_date) is None or as_date(contract.end_date) is None:
        raise ValidationError("contract has no start/end dates")
    return generate_for_contract(db, org_id=org_id, contract=contract, today=today)


# -----------------------------
# Reads
# -----------------------------
def list_by_contract(db: Session, *, org_id: int, contract_id: str) -> list[Installment]:
    must_get_contract(db, org_id=org_id, contract_id=contract_id)
    q = (
        select(Installment)
        .where(Installment.org_id == int(org_id), Installment.contract_id == str(contract_id))
        .order_by(Installment.period.asc())
    )
    return list(db.scalars(q).all())


def _encode_cursor(inst: Installment) -> str:
    return f"{inst.due_date.isoformat()}|{inst.id}"


def _decode_cursor(cursor: str) -> tuple[date, str]:
    try:
        d, iid = cursor.split("|", 1)
        return date.fromisoformat(d), iid
    except ValueError:
        raise ValidationError("invalid cursor")


def list_for_tenant(
    db: Session,
    *,
    org_id: int,
    status: str = STATUS_ALL,
    limit: int = 100,
    cursor: Optional[str] = None,
) -> InstallmentPage:
    try:
        page_size = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if page_size < 1:
        raise ValidationError("limit must be >= 1")

    must_get_org(db, org_id=org_id)

    q = select(Installment).where(Installment.org_id == int(org_id))
    if status and status != STATUS_ALL:
        if not is_valid_status(status):
            raise ValidationError(f"unknown status: {status}")
        q = q.where(Installment.status == status)

    if cursor:
        c_date, c_id = _decode_cursor(cursor)
        q = q.where(
            or_(
                Installment.due_date > c_date,
                and_(Installment.due_date == c_date, Installment.id > c_id),
            )
        )

    q = q.order_by(Installment.due_date.asc(), Installment.id.asc()).limit(page_size)
    items = list(db.scalars(q).all())
    next_cursor = _encode_cursor(items[-1]) if items and len(items) == page_size else None
    return InstallmentPage(items=items, next_cursor=next_cursor)


def get_installment(db: Session, *, org_id: int, installment_id: str) -> Installment:
    return must_get_installment(db, org_id=org_id, installment_id=installment_id)


# -----------------------------
# Agreement toggle
# -----------------------------
def set_agreement_status(
    db: Session,
    *,
    org_id: int,
    installment_id: str,
    enabled: bool,
    note: Optional[str] = None,
    actor_user_id: Optional[int] = None,
    today: Optional[date] = None,
) -> Installment:
    """
    IN_AGREEMENT parks an installment outside overdue escalation while a
    payment plan is negotiated. Clearing it re-derives status from totals.
    """
    reference = today or today_local()
    note_value = (note or "").strip() or None

    with write_transaction(db):
        inst = must_get_installment(db, org_id=org_id, installment_id=installment_id, for_update=True)
        before = inst.model_dump()

        if enabled:
            inst.status = IN_AGREEMENT
            if note_value:
                inst.agreement_note = note_value
        else:
            inst.status = derive_status(
                total=float(inst.total),
                paid=float(inst.paid),
                due_date=inst.due_date,
                reference=reference,
            )
            inst.agreement_note = None

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="installment.agreement_on" if enabled else "installment.agreement_off",
            entity_type="Installment",
            entity_id=inst.id,
            before=before,
            after=inst.model_dump(),
        )

    db.refresh(inst)
    return inst
