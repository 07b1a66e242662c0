# tests/test_recompute.py
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from rentledger.db import SessionLocal
from rentledger.errors import TransientStoreError
from rentledger.models import Installment
from rentledger.services import recompute as recompute_module
from rentledger.services.contract_lifecycle import on_contract_created
from rentledger.services.installments import set_agreement_status
from rentledger.services.payments import record_payment
from rentledger.services.recompute import recompute_installment_statuses


def _statuses(db) -> dict[str, str]:
    db.expire_all()
    return {i.period: i.status for i in db.scalars(select(Installment).order_by(Installment.period)).all()}


def test_sweep_advances_date_driven_statuses(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 4, 30), due_day=10)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2023, 12, 1))
    assert set(_statuses(db).values()) == {"UPCOMING"}

    r = recompute_installment_statuses(db, today=date(2024, 3, 10))
    assert r.scanned == 4
    assert r.updated == 3
    assert _statuses(db) == {
        "2024-01": "OVERDUE",
        "2024-02": "OVERDUE",
        "2024-03": "DUE_TODAY",
        "2024-04": "UPCOMING",
    }

    again = recompute_installment_statuses(db, today=date(2024, 3, 10))
    assert again.updated == 0


def test_sweep_never_touches_payment_or_agreement_states(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 3, 31), due_day=10)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2023, 12, 1))

    record_payment(db, org_id=org_id, installment_id=f"{c.id}__2024-01", amount=1000)
    record_payment(db, org_id=org_id, installment_id=f"{c.id}__2024-02", amount=10)
    set_agreement_status(
        db, org_id=org_id, installment_id=f"{c.id}__2024-03", enabled=True, today=date(2023, 12, 1)
    )

    r = recompute_installment_statuses(db, today=date(2024, 6, 1))
    assert r.scanned == 0
    assert r.updated == 0
    assert _statuses(db) == {"2024-01": "PAID", "2024-02": "PARTIAL", "2024-03": "IN_AGREEMENT"}


def test_sweep_pages_across_offices(db, org_id, contract_factory):
    from rentledger.models import Organization

    other = Organization(slug="other", name="Other office")
    db.add(other)
    db.commit()

    c1 = contract_factory(start=date(2024, 1, 1), end=date(2024, 3, 31))
    c2 = contract_factory(office_id=int(other.id), start=date(2024, 1, 1), end=date(2024, 2, 28))
    on_contract_created(db, org_id=org_id, contract_id=c1.id, today=date(2023, 12, 1))
    on_contract_created(db, org_id=int(other.id), contract_id=c2.id, today=date(2023, 12, 1))

    r = recompute_installment_statuses(db, today=date(2025, 1, 1), page_size=2)
    assert r.scanned == 5
    assert r.updated == 5
    assert r.pages == 3
    assert set(_statuses(db).values()) == {"OVERDUE"}


def test_sweep_stops_between_pages(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 4, 30))
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2023, 12, 1))

    calls = {"n": 0}

    def stop_after_first_page() -> bool:
        calls["n"] += 1
        return calls["n"] > 1

    r = recompute_installment_statuses(db, today=date(2025, 1, 1), page_size=2, should_stop=stop_after_first_page)
    assert r.stopped_early is True
    assert r.pages == 1
    assert r.updated == 2


def test_version_is_bumped_by_sweep_writes(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 1, 31))
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2023, 12, 1))
    before = db.get(Installment, f"{c.id}__2024-01").version

    recompute_installment_statuses(db, today=date(2025, 1, 1))
    db.expire_all()
    inst = db.get(Installment, f"{c.id}__2024-01")
    assert inst.version == before + 1

    # a later ORM write on the same row still succeeds against the new version
    record_payment(db, org_id=org_id, installment_id=inst.id, amount=50)
    db.refresh(inst)
    assert inst.status == "PARTIAL"


def test_payment_landing_mid_sweep_is_not_overwritten(db, org_id, contract_factory, monkeypatch):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 1, 31), due_day=10)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    iid = f"{c.id}__2024-01"

    real_classify = recompute_module.classify_due_date

    def classify_after_payment(due_date, reference):
        # another writer records a payment between the sweep's read and its write
        other = SessionLocal()
        try:
            record_payment(other, org_id=org_id, installment_id=iid, amount=300, method="cash")
        finally:
            other.close()
        return real_classify(due_date, reference)

    monkeypatch.setattr(recompute_module, "classify_due_date", classify_after_payment)

    r = recompute_installment_statuses(db, today=date(2024, 1, 20))
    assert r.scanned == 1
    assert r.updated == 0

    db.expire_all()
    inst = db.get(Installment, iid)
    assert (inst.status, inst.paid, inst.due) == ("PARTIAL", 300.0, 700.0)


def test_store_failure_rolls_back_current_page_only(db, org_id, contract_factory, monkeypatch):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 4, 30), due_day=10)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))

    real_commit = db.commit
    commits = []

    def commit_then_fail():
        commits.append(1)
        if len(commits) > 1:
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
        real_commit()

    monkeypatch.setattr(db, "commit", commit_then_fail)

    with pytest.raises(TransientStoreError):
        recompute_installment_statuses(db, today=date(2024, 5, 1), page_size=2)

    assert _statuses(db) == {
        "2024-01": "OVERDUE",
        "2024-02": "OVERDUE",
        "2024-03": "UPCOMING",
        "2024-04": "UPCOMING",
    }
