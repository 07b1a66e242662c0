# tests/test_payments.py
from __future__ import annotations

from datetime import date, datetime

import pytest

from rentledger.db import SessionLocal
from rentledger.errors import TransientStoreError, ValidationError
from rentledger.models import Installment
from rentledger.services.contract_lifecycle import on_contract_created
from rentledger.services.installments import set_agreement_status
from rentledger.services.line_items import upsert_item
from rentledger.services.payments import (
    list_installment_payments,
    list_payments,
    mark_paid_without_receipt,
    record_payment,
)


def _setup(db, org_id, contract_factory, rent: float = 1000.0):
    c = contract_factory(rent=rent)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 5))
    return c, db.get(Installment, f"{c.id}__2024-01")


def test_partial_then_full_payment(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)

    record_payment(db, org_id=org_id, installment_id=inst.id, amount=400, method="cash")
    db.refresh(inst)
    assert (inst.paid, inst.due, inst.status) == (400.0, 600.0, "PARTIAL")

    record_payment(db, org_id=org_id, installment_id=inst.id, amount=600, method="transfer")
    db.refresh(inst)
    assert (inst.paid, inst.due, inst.status) == (1000.0, 0.0, "PAID")
    assert len(list_installment_payments(db, org_id=org_id, installment_id=inst.id)) == 2


def test_overpayment_keeps_true_sum_as_credit(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=1250)
    db.refresh(inst)
    assert inst.paid == 1250.0
    assert inst.due == 0.0
    assert inst.credit == 250.0
    assert inst.status == "PAID"


def test_invalid_payments_change_nothing(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    for bad in (0, -10, float("nan"), "abc"):
        with pytest.raises(ValidationError):
            record_payment(db, org_id=org_id, installment_id=inst.id, amount=bad)
    with pytest.raises(ValidationError):
        record_payment(db, org_id=org_id, installment_id=inst.id, amount=10, method="crypto")

    db.refresh(inst)
    assert (inst.paid, inst.status) == (0.0, "UPCOMING")
    assert list_installment_payments(db, org_id=org_id, installment_id=inst.id) == []


def test_unreceipted_payment_flag_is_sticky(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    p = record_payment(
        db,
        org_id=org_id,
        installment_id=inst.id,
        amount=100,
        without_receipt=True,
        receipt={"name": "ignored.pdf", "path": "x", "url": "y"},
    )
    assert p.without_receipt is True
    assert p.receipt is None

    record_payment(
        db,
        org_id=org_id,
        installment_id=inst.id,
        amount=100,
        receipt={"name": "r.pdf", "path": "receipts/r.pdf", "url": "https://files/r.pdf"},
    )
    db.refresh(inst)
    assert inst.has_unverified_payments is True


def test_payment_overrides_agreement(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    set_agreement_status(db, org_id=org_id, installment_id=inst.id, enabled=True, today=date(2024, 1, 5))
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=100)
    db.refresh(inst)
    assert inst.status == "PARTIAL"


def test_mark_paid_without_receipt_settles_the_balance(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=300)

    p = mark_paid_without_receipt(db, org_id=org_id, installment_id=inst.id, collected_by="front desk")
    assert p is not None
    assert p.amount == 700.0
    assert p.without_receipt is True
    assert p.note

    db.refresh(inst)
    assert (inst.paid, inst.due, inst.status) == (1000.0, 0.0, "PAID")
    assert inst.has_unverified_payments is True


def test_mark_paid_on_settled_installment_writes_no_payment(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=1000)

    assert mark_paid_without_receipt(db, org_id=org_id, installment_id=inst.id) is None
    db.refresh(inst)
    assert inst.status == "PAID"
    assert inst.has_unverified_payments is True
    assert len(list_installment_payments(db, org_id=org_id, installment_id=inst.id)) == 1


def test_mark_paid_requires_positive_total(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    upsert_item(db, org_id=org_id, installment_id=inst.id, type="discount", label="Full waiver", amount=1000)
    with pytest.raises(ValidationError):
        mark_paid_without_receipt(db, org_id=org_id, installment_id=inst.id)


def test_office_payments_view_newest_first(db, org_id, contract_factory):
    c, inst = _setup(db, org_id, contract_factory)
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=10, paid_at=datetime(2024, 1, 2, 10, 0))
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=20, paid_at="2024-01-03T09:00:00")

    rows = list_payments(db, org_id=org_id)
    assert [r.amount for r in rows] == [20.0, 10.0]
    assert [r.amount for r in list_payments(db, org_id=org_id, contract_id=c.id)] == [20.0, 10.0]
    with pytest.raises(ValidationError):
        record_payment(db, org_id=org_id, installment_id=inst.id, amount=5, paid_at="yesterday")


def test_stale_writer_loses_and_leaves_winner_intact(db, org_id, contract_factory):
    _c, inst = _setup(db, org_id, contract_factory)
    iid = inst.id

    slow = SessionLocal()
    try:
        # slow reads version 1, then the other writer commits first
        assert slow.get(Installment, iid).paid == 0.0
        record_payment(db, org_id=org_id, installment_id=iid, amount=400, method="cash")

        with pytest.raises(TransientStoreError):
            record_payment(slow, org_id=org_id, installment_id=iid, amount=300, method="cash")
    finally:
        slow.close()

    db.expire_all()
    inst = db.get(Installment, iid)
    assert (inst.paid, inst.due, inst.status) == (400.0, 600.0, "PARTIAL")
    assert [p.amount for p in list_installment_payments(db, org_id=org_id, installment_id=iid)] == [400.0]
