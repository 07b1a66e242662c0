# tests/test_api.py
from __future__ import annotations

from fastapi.testclient import TestClient

from rentledger.main import create_app

OWNER = {"X-Org-Slug": "acme", "X-User-Email": "owner@acme.test", "X-User-Role": "owner"}
VIEWER = {"X-Org-Slug": "acme", "X-User-Email": "viewer@acme.test", "X-User-Role": "viewer"}

CONTRACT = {
    "property_title": "Unit 4",
    "tenant": {"full_name": "Ana", "email": "ana@example.com"},
    "guarantors": [{"full_name": "Gus", "email": "gus@example.com"}],
    "start_date": "2024-01-01",
    "end_date": "2024-03-31",
    "due_day": 10,
    "rent_amount": 1000,
    "notifications_enabled": True,
}


def _client() -> TestClient:
    return TestClient(create_app())


def test_health_and_request_id():
    client = _client()
    r = client.get("/api/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"] == "req-123"


def test_auth_headers_required():
    client = _client()
    r = client.get("/api/contracts")
    assert r.status_code == 401


def test_contract_flow_end_to_end():
    client = _client()

    r = client.post("/api/contracts", json=CONTRACT, headers=OWNER)
    assert r.status_code == 200, r.text
    contract = r.json()
    assert contract["notification_emails"] == ["ana@example.com"]

    r = client.get(f"/api/contracts/{contract['id']}/installments", headers=OWNER)
    assert r.status_code == 200
    rows = r.json()
    assert [x["period"] for x in rows] == ["2024-01", "2024-02", "2024-03"]
    iid = rows[0]["id"]

    r = client.post(f"/api/contracts/{contract['id']}/installments/generate", headers=OWNER)
    assert r.json() == {"created": 0, "skipped": 3, "installment_ids": []}

    r = client.put(
        f"/api/installments/{iid}/items",
        json={"type": "expenses", "label": "Building fees", "amount": 250},
        headers=OWNER,
    )
    assert r.status_code == 200, r.text

    r = client.post(f"/api/installments/{iid}/payments", json={"amount": 500, "method": "cash"}, headers=OWNER)
    assert r.status_code == 200, r.text

    r = client.get(f"/api/installments/{iid}", headers=OWNER)
    body = r.json()
    assert body["total"] == 1250.0
    assert body["paid"] == 500.0
    assert body["due"] == 750.0
    assert body["status"] == "PARTIAL"

    r = client.post(f"/api/installments/{iid}/mark-paid-without-receipt", json={}, headers=OWNER)
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["installment"]["status"] == "PAID"
    assert out["installment"]["has_unverified_payments"] is True
    assert out["payment"]["amount"] == 750.0

    r = client.get("/api/payments", headers=OWNER)
    assert len(r.json()) == 2

    r = client.get("/api/dashboard/summary", params={"contract_id": contract["id"]}, headers=OWNER)
    summary = r.json()
    assert summary["installments"] == 3
    assert summary["status_counts"]["PAID"] == 1
    assert summary["paid"] == 1250.0
    assert summary["unverified_payments"] == 1


def test_error_taxonomy_maps_to_http():
    client = _client()
    r = client.post("/api/contracts", json=CONTRACT, headers=OWNER)
    contract_id = r.json()["id"]
    iid = f"{contract_id}__2024-01"

    r = client.post(f"/api/installments/{iid}/payments", json={"amount": -5}, headers=OWNER)
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"

    r = client.get("/api/installments/missing__2024-01", headers=OWNER)
    assert r.status_code == 404

    bad = {**CONTRACT, "start_date": "2024-05-01", "end_date": "2024-01-01"}
    r = client.post("/api/contracts", json=bad, headers=OWNER)
    assert r.status_code == 400


def test_offices_are_isolated():
    client = _client()
    r = client.post("/api/contracts", json=CONTRACT, headers=OWNER)
    contract_id = r.json()["id"]

    other = {"X-Org-Slug": "other", "X-User-Email": "owner@other.test", "X-User-Role": "owner"}
    assert client.get(f"/api/contracts/{contract_id}", headers=other).status_code == 404
    assert client.get("/api/installments", headers=other).json()["items"] == []


def test_roles_gate_writes_and_ops():
    client = _client()
    client.post("/api/contracts", json=CONTRACT, headers=OWNER)

    r = client.post("/api/contracts", json=CONTRACT, headers=VIEWER)
    assert r.status_code == 403
    assert client.post("/api/ops/recompute", headers=VIEWER).status_code == 403

    r = client.post("/api/ops/recompute", params={"today": "2024-02-15"}, headers=OWNER)
    assert r.status_code == 200
    assert r.json()["scanned"] == 3


def test_agreement_override_and_sent_log():
    client = _client()
    contract_id = client.post("/api/contracts", json=CONTRACT, headers=OWNER).json()["id"]
    iid = f"{contract_id}__2024-02"

    r = client.post(f"/api/installments/{iid}/agreement", json={"enabled": True, "note": "plan"}, headers=OWNER)
    assert r.json()["status"] == "IN_AGREEMENT"

    r = client.put(f"/api/installments/{iid}/notification-override", json={"enabled": False}, headers=OWNER)
    assert r.json()["notification_override"] is False

    payload = {
        "notification_type": "POST_DUE_1",
        "channel": "email",
        "audience": "TENANT",
        "recipient": "ana@example.com",
        "day": "2024-02-11",
    }
    assert client.post(f"/api/installments/{iid}/notifications/sent", json=payload, headers=OWNER).json() == {
        "logged": True
    }
    assert client.post(f"/api/installments/{iid}/notifications/sent", json=payload, headers=OWNER).json() == {
        "logged": False
    }

    r = client.get(f"/api/contracts/{contract_id}/reminders", headers=OWNER)
    assert r.status_code == 200


def test_contract_pdf_pointer():
    client = _client()
    contract_id = client.post("/api/contracts", json=CONTRACT, headers=OWNER).json()["id"]
    body = {"path": f"contracts/{contract_id}.pdf", "download_url": "https://files.example.com/c.pdf"}

    assert client.patch(f"/api/contracts/{contract_id}/pdf", json=body, headers=VIEWER).status_code == 403

    r = client.patch(f"/api/contracts/{contract_id}/pdf", json=body, headers=OWNER)
    assert r.status_code == 200, r.text
    assert r.json()["pdf"]["download_url"] == "https://files.example.com/c.pdf"
    assert client.get(f"/api/contracts/{contract_id}", headers=OWNER).json()["pdf"]["path"] == body["path"]

    r = client.patch(f"/api/contracts/{contract_id}/pdf", json={**body, "download_url": "nope"}, headers=OWNER)
    assert r.status_code == 400
