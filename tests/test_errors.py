# tests/test_errors.py
from __future__ import annotations

import json
import logging
from datetime import date

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rentledger.errors import ConflictError, LedgerError, NotFoundError, TransientStoreError, ValidationError
from rentledger.exception_handlers import setup_exception_handlers
from rentledger.logging_config import JsonFormatter
from rentledger.middleware.request_context import RequestContextMiddleware
from rentledger.models import Installment
from rentledger.services.installments import _commit_new_installment, generate_for_contract


def test_status_codes_per_error_class():
    assert ValidationError("x").status_code == 400
    assert NotFoundError("x").status_code == 404
    assert ConflictError("x").status_code == 409
    assert TransientStoreError("x").status_code == 503
    assert isinstance(ValidationError("x"), ValueError)
    assert isinstance(NotFoundError("x"), LookupError)


def _app_raising(exc: LedgerError) -> TestClient:
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    setup_exception_handlers(app)

    @app.get("/boom")
    def boom():
        raise exc

    return TestClient(app)


@pytest.mark.parametrize(
    "exc,code",
    [
        (ValidationError("bad amount"), 400),
        (NotFoundError("no such installment"), 404),
        (ConflictError("installment exists"), 409),
        (TransientStoreError("db down"), 503),
    ],
)
def test_handler_renders_error_body(exc, code):
    r = _app_raising(exc).get("/boom", headers={"X-Request-ID": "rid-7"})
    assert r.status_code == code
    body = r.json()
    assert body["detail"] == exc.message
    assert body["error"] == type(exc).__name__
    assert body["request_id"] == "rid-7"


def test_duplicate_insert_surfaces_as_conflict(db, org_id, contract_factory):
    c = contract_factory(start=date(2024, 1, 1), end=date(2024, 1, 31))
    generate_for_contract(db, org_id=org_id, contract=c, today=date(2024, 1, 1))
    iid = f"{c.id}__2024-01"

    db.expunge_all()
    db.add(
        Installment(
            id=iid,
            org_id=org_id,
            contract_id=c.id,
            period="2024-01",
            due_date=date(2024, 1, 10),
            status="UPCOMING",
            total=1.0,
            paid=0.0,
            due=1.0,
        )
    )
    with pytest.raises(ConflictError):
        _commit_new_installment(db, iid)

    assert db.get(Installment, iid).total == 1000.0


def test_json_formatter_carries_extras():
    rec = logging.LogRecord("rentledger.test", logging.INFO, __file__, 1, "swept %s", ("ok",), None)
    rec.scanned = 3
    rec.org_id = 9
    line = json.loads(JsonFormatter().format(rec))
    assert line["message"] == "swept ok"
    assert line["level"] == "INFO"
    assert line["scanned"] == 3
    assert line["org_id"] == 9
    assert "request_id" not in line
