# rentledger/services/contract_lifecycle.py
from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.periods import as_date
from ..domain.status import today_utc
from ..errors import ValidationError
from ..models import Contract
from .installments import GenerateResult, generate_for_contract
from .notifications import resolve_tenant_recipients
from .ownership import must_get_contract, must_get_org
from .tx import write_transaction

log = logging.getLogger(__name__)

UPDATE_RULE_TYPES = ("IPC", "ICL", "FIXED", "MANUAL")
GUARANTEE_TYPES = ("GUARANTORS", "SURETY_BOND", "EVICTION_AGREEMENT", "OTHER")

_GUARANTEE_ALIASES = {
    "GUARANTORS": "GUARANTORS",
    "GUARANTOR_PERSONS": "GUARANTORS",
    "PERSONAL_GUARANTORS": "GUARANTORS",
    "SURETY_BOND": "SURETY_BOND",
    "EVICTION_AGREEMENT": "EVICTION_AGREEMENT",
}


def normalize_guarantee_type(value: Optional[str]) -> str:
    key = (value or "").strip().upper()
    return _GUARANTEE_ALIASES.get(key, "OTHER")


def normalize_due_day(value: Any) -> int:
    """Absent or non-numeric => 1; anything below 1 is raised to 1."""
    try:
        day = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(day):
        return 1
    return max(int(day), 1)


def _party(v: Optional[dict[str, Any]]) -> dict[str, Any]:
    v = v or {}
    return {
        "full_name": str(v.get("full_name") or "").strip(),
        "national_id": (str(v.get("national_id")).strip() if v.get("national_id") else None),
        "email": (str(v.get("email")).strip() if v.get("email") else None),
        "whatsapp": (str(v.get("whatsapp")).strip() if v.get("whatsapp") else None),
        "address": (str(v.get("address")).strip() if v.get("address") else None),
    }


def create_contract(
    db: Session,
    *,
    org_id: int,
    actor_user_id: Optional[int],
    payload: dict[str, Any],
) -> Contract:
    """
    Persists a new contract. Installments are materialized afterwards by
    on_contract_created (inline or on the worker).
    """
    must_get_org(db, org_id=org_id)

    start = as_date(payload.get("start_date"))
    end = as_date(payload.get("end_date"))
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required")
    if end < start:
        raise ValidationError("end_date cannot be before start_date")

    try:
        due_day = int(payload.get("due_day", 1))
    except (TypeError, ValueError):
        raise ValidationError("due_day must be between 1 and 31")
    if not 1 <= due_day <= 31:
        raise ValidationError("due_day must be between 1 and 31")

    try:
        rent = float(payload.get("rent_amount") or 0.0)
    except (TypeError, ValueError):
        raise ValidationError("rent_amount must be a number")
    if not math.isfinite(rent) or rent <= 0:
        raise ValidationError("rent_amount must be greater than 0")

    rule = payload.get("update_rule") or {}
    rule_type = str(rule.get("type") or "MANUAL").strip().upper()
    if rule_type not in UPDATE_RULE_TYPES:
        raise ValidationError(f"unknown update rule: {rule_type}")

    with write_transaction(db):
        row = Contract(
            org_id=int(org_id),
            property_title=str(payload.get("property_title") or "").strip(),
            property_address=str(payload.get("property_address") or "").strip(),
            start_date=start,
            end_date=end,
            due_day=due_day,
            rent_amount=rent,
            update_rule_type=rule_type,
            update_rule_period_months=int(rule.get("period_months") or 12),
            deposit_amount=float(payload.get("deposit_amount") or 0.0),
            guarantee_type=normalize_guarantee_type(payload.get("guarantee_type")),
            created_by_user_id=actor_user_id,
        )
        row.set_parties(
            tenant=_party(payload.get("tenant")),
            owner=_party(payload.get("owner")),
            guarantors=[_party(g) for g in (payload.get("guarantors") or [])],
        )
        emails, whatsapps = resolve_tenant_recipients(row)
        row.set_notification_config(
            enabled=bool(payload.get("notifications_enabled", False)),
            emails=emails,
            whatsapps=whatsapps,
        )
        db.add(row)
        db.flush()

        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="contract.create",
            entity_type="Contract",
            entity_id=row.id,
            before=None,
            after=row.model_dump(),
        )

    db.refresh(row)
    return row


def attach_contract_pdf(
    db: Session,
    *,
    org_id: int,
    contract_id: str,
    path: str,
    download_url: str,
    actor_user_id: Optional[int] = None,
    uploaded_at: Optional[datetime] = None,
) -> Contract:
    """
    Points the contract at its signed PDF. The file itself lives in external
    storage; only the storage path and download URL are kept. A new upload
    replaces the previous pointer.
    """
    path_value = (path or "").strip()
    if not path_value:
        raise ValidationError("pdf path is required")
    url_value = (download_url or "").strip()
    if not url_value.lower().startswith(("http://", "https://")):
        raise ValidationError("pdf download_url must be an http(s) URL")

    with write_transaction(db):
        contract = must_get_contract(db, org_id=org_id, contract_id=contract_id)
        before = contract.model_dump()
        contract.set_pdf(path=path_value, download_url=url_value, uploaded_at=uploaded_at or datetime.utcnow())
        audit_write(
            db,
            org_id=int(org_id),
            actor_user_id=actor_user_id,
            action="contract.pdf",
            entity_type="Contract",
            entity_id=contract.id,
            before=before,
            after=contract.model_dump(),
        )

    db.refresh(contract)
    return contract


def on_contract_created(
    db: Session,
    *,
    org_id: int,
    contract_id: str,
    today: Optional[date] = None,
) -> GenerateResult:
    """
    One-shot reaction to a new contract: validate its dates, then materialize
    every installment. Invalid contracts are logged and rejected before any
    write. Re-delivery is harmless; existing installments are skipped.
    """
    contract = must_get_contract(db, org_id=org_id, contract_id=contract_id)
    ctx = {"org_id": int(org_id), "contract_id": str(contract_id)}

    start = as_date(contract.start_date)
    end = as_date(contract.end_date)
    if start is None or end is None:
        log.warning("contract has no dates; installments not generated", extra=ctx)
        raise ValidationError("contract start_date and end_date are required")
    if end < start:
        log.warning("contract date range is inverted; installments not generated", extra=ctx)
        raise ValidationError("contract end_date cannot be before start_date")

    due_day = normalize_due_day(contract.due_day)
    if contract.due_day != due_day:
        contract.due_day = due_day
    rent = float(contract.rent_amount or 0.0)
    if not math.isfinite(rent) or rent <= 0:
        log.warning("contract has no positive rent; installments not generated", extra=ctx)
        raise ValidationError("contract rent_amount must be greater than 0")

    result = generate_for_contract(db, org_id=org_id, contract=contract, today=today or today_utc())

    log.info(
        "installments processed",
        extra={**ctx, "created_count": result.created, "skipped_count": result.skipped},
    )
    return result
