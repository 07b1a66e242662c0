# rentledger/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentledger.db import SessionLocal
from rentledger.models import AppUser, Contract, OrgMembership, Organization
from rentledger.services.contract_lifecycle import create_contract, on_contract_created


@dataclass(frozen=True)
class SeedResult:
    org_slug: str
    user_email: str
    contract_id: Optional[str]
    installments_created: int


def _get_or_create_org(db: Session, slug: str, name: str) -> Organization:
    row = db.scalar(select(Organization).where(Organization.slug == slug))
    if row:
        return row
    row = Organization(slug=slug, name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.scalar(select(AppUser).where(AppUser.email == email))
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _ensure_membership(db: Session, org_id: int, user_id: int, role: str = "owner") -> None:
    existing = db.scalar(
        select(OrgMembership).where(OrgMembership.org_id == int(org_id), OrgMembership.user_id == int(user_id))
    )
    if existing:
        return
    db.add(OrgMembership(org_id=int(org_id), user_id=int(user_id), role=str(role)))
    db.commit()


def _demo_contract_payload(start: date) -> dict:
    return {
        "property_title": "Demo apartment 3B",
        "property_address": "Av. Siempre Viva 742, 3B",
        "tenant": {"full_name": "Demo Tenant", "email": "tenant@demo.local", "whatsapp": "+5491100000000"},
        "owner": {"full_name": "Demo Owner", "email": "owner@demo.local"},
        "guarantors": [{"full_name": "Demo Guarantor", "email": "guarantor@demo.local"}],
        "start_date": start,
        "end_date": date(start.year + 1, start.month, 1) - timedelta(days=1),
        "due_day": 10,
        "rent_amount": 150000.0,
        "update_rule": {"type": "IPC", "period_months": 3},
        "deposit_amount": 150000.0,
        "guarantee_type": "GUARANTORS",
        "notifications_enabled": True,
    }


def seed_demo(
    *,
    org_slug: str,
    org_name: str,
    user_email: str,
    user_name: str,
    create_sample_contract: bool = True,
) -> SeedResult:
    db = SessionLocal()
    try:
        org = _get_or_create_org(db, org_slug, org_name)
        user = _get_or_create_user(db, user_email, user_name)
        _ensure_membership(db, int(org.id), int(user.id), role="owner")

        contract_id: Optional[str] = None
        created = 0
        if create_sample_contract:
            existing = db.scalar(
                select(Contract).where(Contract.org_id == int(org.id), Contract.property_title == "Demo apartment 3B")
            )
            if existing is None:
                today = date.today()
                row = create_contract(
                    db,
                    org_id=int(org.id),
                    actor_user_id=int(user.id),
                    payload=_demo_contract_payload(date(today.year, today.month, 1)),
                )
                existing = row
            contract_id = existing.id
            created = on_contract_created(db, org_id=int(org.id), contract_id=contract_id).created

        return SeedResult(
            org_slug=str(org.slug),
            user_email=str(user.email),
            contract_id=contract_id,
            installments_created=created,
        )
    finally:
        db.close()
