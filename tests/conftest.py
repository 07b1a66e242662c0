# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from datetime import date

import pytest

# Settings are read at import time; point them at a throwaway sqlite file first.
_DB_DIR = tempfile.mkdtemp(prefix="rentledger-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["APP_ENV"] = "local"
os.environ["AUTH_MODE"] = "dev"
os.environ.pop("CELERY_BROKER_URL", None)

from rentledger.db import Base, SessionLocal, engine  # noqa: E402
from rentledger import models  # noqa: E402,F401
from rentledger.models import Contract, Organization  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def org_id(db) -> int:
    org = Organization(slug="acme", name="Acme Rentals")
    db.add(org)
    db.commit()
    db.refresh(org)
    return int(org.id)


def make_contract(
    db,
    *,
    org_id: int,
    start: date = date(2024, 1, 15),
    end: date = date(2024, 3, 10),
    due_day=10,
    rent: float = 1000.0,
    tenant: dict | None = None,
    guarantors: list | None = None,
    notifications_enabled: bool = False,
) -> Contract:
    c = Contract(
        org_id=org_id,
        property_title="Unit 1",
        start_date=start,
        end_date=end,
        due_day=due_day,
        rent_amount=rent,
    )
    c.set_parties(
        tenant=tenant or {"full_name": "Ana", "email": "ana@example.com", "whatsapp": "+5491111111111"},
        owner={"full_name": "Owner"},
        guarantors=guarantors or [],
    )
    emails = [c.tenant["email"]] if c.tenant.get("email") else []
    whatsapps = [c.tenant["whatsapp"]] if c.tenant.get("whatsapp") else []
    c.set_notification_config(enabled=notifications_enabled, emails=emails, whatsapps=whatsapps)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


@pytest.fixture()
def contract_factory(db, org_id):
    def _make(office_id: int | None = None, **kwargs) -> Contract:
        return make_contract(db, org_id=office_id or org_id, **kwargs)

    return _make
