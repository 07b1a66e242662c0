# tests/test_installment_generation.py
from __future__ import annotations

import json
from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from rentledger.errors import NotFoundError, ValidationError
from rentledger.models import AuditEvent, Installment, InstallmentItem
from rentledger.services.contract_lifecycle import attach_contract_pdf, create_contract, on_contract_created
from rentledger.services.installments import ensure_installments, list_by_contract, list_for_tenant


def test_trigger_creates_one_installment_per_month(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 15), end=date(2024, 3, 10), due_day=31, rent=1000.0)

    r = on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 2, 29))
    assert r.created == 3
    assert r.skipped == 0

    rows = list_by_contract(db, org_id=org_id, contract_id=c.id)
    assert [x.period for x in rows] == ["2024-01", "2024-02", "2024-03"]
    assert [x.due_date for x in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
    assert [x.status for x in rows] == ["OVERDUE", "DUE_TODAY", "UPCOMING"]
    assert rows[0].id == f"{c.id}__2024-01"
    for x in rows:
        assert (x.total, x.paid, x.due) == (1000.0, 0.0, 1000.0)
        assert x.notification_override is None
        assert x.has_unverified_payments is False


def test_each_installment_gets_one_rent_item(db, org_id, contract_factory):
    c = contract_factory(rent=850.5)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))

    items = list(db.scalars(select(InstallmentItem).order_by(InstallmentItem.installment_id)).all())
    assert len(items) == 3
    assert {i.type for i in items} == {"rent"}
    assert all(i.amount == 850.5 for i in items)


def test_regeneration_is_idempotent(db, org_id, contract_factory):
    c = contract_factory()
    first = on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    second = ensure_installments(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))

    assert first.created == 3
    assert second.created == 0
    assert second.skipped == 3
    assert db.scalar(select(func.count(Installment.id))) == 3
    assert db.scalar(select(func.count(InstallmentItem.id))) == 3


def test_existing_installments_are_not_touched(db, org_id, contract_factory):
    c = contract_factory()
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    inst = db.get(Installment, f"{c.id}__2024-02")
    inst.status = "PAID"
    inst.paid = 1000.0
    inst.due = 0.0
    db.commit()

    ensure_installments(db, org_id=org_id, contract_id=c.id, today=date(2024, 6, 1))
    db.refresh(inst)
    assert inst.status == "PAID"


def test_missing_due_day_defaults_to_first(db, org_id, contract_factory):
    c = contract_factory(due_day=None)
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    rows = list_by_contract(db, org_id=org_id, contract_id=c.id)
    assert [x.due_date.day for x in rows] == [1, 1, 1]


def test_zero_rent_contract_is_rejected(db, org_id, contract_factory):
    payload = {"start_date": "2024-01-01", "end_date": "2024-03-31", "due_day": 10, "rent_amount": 0}
    with pytest.raises(ValidationError):
        create_contract(db, org_id=org_id, actor_user_id=None, payload=payload)

    c = contract_factory(rent=0.0)
    with pytest.raises(ValidationError):
        on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    assert db.scalar(select(func.count(Installment.id))) == 0
    assert db.scalar(select(func.count(InstallmentItem.id))) == 0


def test_inverted_dates_write_nothing(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 5, 1), end=date(2024, 1, 1))
    with pytest.raises(ValidationError):
        on_contract_created(db, org_id=org_id, contract_id=c.id)
    assert db.scalar(select(func.count(Installment.id))) == 0


def test_contract_from_another_office_is_not_found(db, org_id, contract_factory):
    c = contract_factory()
    with pytest.raises(NotFoundError):
        on_contract_created(db, org_id=org_id + 1, contract_id=c.id)


def test_create_contract_validates_and_normalizes(db, org_id):
    row = create_contract(
        db,
        org_id=org_id,
        actor_user_id=None,
        payload={
            "start_date": "2024-01-01",
            "end_date": "2024-06-30",
            "due_day": 5,
            "rent_amount": 1200,
            "tenant": {"full_name": "Ana", "email": "ana@example.com"},
            "guarantee_type": "guarantor_persons",
            "notifications_enabled": True,
        },
    )
    assert row.guarantee_type == "GUARANTORS"
    assert row.notification_enabled is True
    assert row.notification_emails == ["ana@example.com"]
    assert row.notification_whatsapps == []

    with pytest.raises(ValidationError):
        create_contract(
            db,
            org_id=org_id,
            actor_user_id=None,
            payload={"start_date": "2024-06-01", "end_date": "2024-01-01"},
        )
    with pytest.raises(ValidationError):
        create_contract(
            db,
            org_id=org_id,
            actor_user_id=None,
            payload={"start_date": "2024-01-01", "end_date": "2024-02-01", "due_day": 40},
        )


def test_office_listing_pages_by_due_date(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 5, 31))
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 3, 1))

    first = list_for_tenant(db, org_id=org_id, limit=2)
    assert [x.period for x in first.items] == ["2024-01", "2024-02"]
    assert first.next_cursor is not None

    second = list_for_tenant(db, org_id=org_id, limit=2, cursor=first.next_cursor)
    assert [x.period for x in second.items] == ["2024-03", "2024-04"]

    third = list_for_tenant(db, org_id=org_id, limit=2, cursor=second.next_cursor)
    assert [x.period for x in third.items] == ["2024-05"]
    assert third.next_cursor is None

    overdue = list_for_tenant(db, org_id=org_id, status="OVERDUE")
    assert [x.period for x in overdue.items] == ["2024-01", "2024-02"]

    with pytest.raises(ValidationError):
        list_for_tenant(db, org_id=org_id, status="LATE")


@pytest.mark.parametrize("limit", [0, -3, "many"])
def test_office_listing_rejects_bad_page_size(db, org_id, contract_factory, limit):
    c = contract_factory()
    on_contract_created(db, org_id=org_id, contract_id=c.id, today=date(2024, 1, 1))
    with pytest.raises(ValidationError):
        list_for_tenant(db, org_id=org_id, limit=limit)


def test_attach_pdf_sets_pointer_and_audits(db, org_id, contract_factory):
    c = contract_factory()
    assert c.pdf is None

    row = attach_contract_pdf(
        db,
        org_id=org_id,
        contract_id=c.id,
        path=f"contracts/{c.id}/signed.pdf",
        download_url="https://files.example.com/signed.pdf",
        uploaded_at=datetime(2024, 1, 2, 12, 0),
    )
    assert row.pdf == {
        "path": f"contracts/{c.id}/signed.pdf",
        "download_url": "https://files.example.com/signed.pdf",
        "uploaded_at": "2024-01-02T12:00:00",
    }
    audit = db.scalars(select(AuditEvent).where(AuditEvent.action == "contract.pdf")).one()
    assert json.loads(audit.before_json) == {"pdf": None}

    with pytest.raises(ValidationError):
        attach_contract_pdf(db, org_id=org_id, contract_id=c.id, path="x.pdf", download_url="ftp://nope")
    with pytest.raises(ValidationError):
        attach_contract_pdf(db, org_id=org_id, contract_id=c.id, path=" ", download_url="https://a.b/c.pdf")
    with pytest.raises(NotFoundError):
        attach_contract_pdf(db, org_id=org_id + 1, contract_id=c.id, path="x.pdf", download_url="https://a.b/c.pdf")
