# rentledger/models.py
from __future__ import annotations

import json
import uuid
from datetime import date, datetime
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_id() -> str:
    return uuid.uuid4().hex


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except ValueError:
        return default


def _dumps(v: Any) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


# -----------------------------
# Multitenant tables (office = tenant partition)
# -----------------------------
class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(80), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class OrgMembership(Base):
    __tablename__ = "org_memberships"
    __table_args__ = (UniqueConstraint("org_id", "user_id", name="uq_org_memberships_org_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="owner")  # owner|operator|viewer
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Contracts
# -----------------------------
class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    property_title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    property_address: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # parties: {"full_name", "national_id", "email", "whatsapp", "address"}
    tenant_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    owner_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    guarantors_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    due_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1)
    rent_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    update_rule_type: Mapped[str] = mapped_column(String(20), nullable=False, default="MANUAL")  # IPC|ICL|FIXED|MANUAL
    update_rule_period_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    deposit_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    guarantee_type: Mapped[str] = mapped_column(String(40), nullable=False, default="OTHER")

    pdf_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notification_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_emails_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    notification_whatsapps_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")  # active|ended
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    installments: Mapped[List["Installment"]] = relationship(back_populates="contract")

    @property
    def tenant(self) -> dict[str, Any]:
        return _loads(self.tenant_json, {})

    @property
    def owner(self) -> dict[str, Any]:
        return _loads(self.owner_json, {})

    @property
    def guarantors(self) -> list[dict[str, Any]]:
        return _loads(self.guarantors_json, [])

    @property
    def pdf(self) -> Optional[dict[str, Any]]:
        return _loads(self.pdf_json, None)

    @property
    def notification_emails(self) -> list[str]:
        return _loads(self.notification_emails_json, [])

    @property
    def notification_whatsapps(self) -> list[str]:
        return _loads(self.notification_whatsapps_json, [])

    def set_parties(
        self,
        *,
        tenant: dict[str, Any],
        owner: dict[str, Any],
        guarantors: list[dict[str, Any]],
    ) -> None:
        self.tenant_json = _dumps(tenant) or "{}"
        self.owner_json = _dumps(owner) or "{}"
        self.guarantors_json = _dumps(guarantors) or "[]"

    def set_notification_config(self, *, enabled: bool, emails: list[str], whatsapps: list[str]) -> None:
        self.notification_enabled = bool(enabled)
        self.notification_emails_json = _dumps(list(emails)) or "[]"
        self.notification_whatsapps_json = _dumps(list(whatsapps)) or "[]"

    def set_pdf(self, *, path: str, download_url: str, uploaded_at: datetime) -> None:
        self.pdf_json = _dumps({"path": path, "download_url": download_url, "uploaded_at": uploaded_at.isoformat()})

    def model_dump(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "property_title": self.property_title,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "due_day": self.due_day,
            "rent_amount": self.rent_amount,
            "guarantee_type": self.guarantee_type,
            "notification_enabled": self.notification_enabled,
            "status": self.status,
            "pdf": self.pdf,
        }


# -----------------------------
# Installments
# -----------------------------
class Installment(Base):
    __tablename__ = "installments"
    __table_args__ = (
        UniqueConstraint("org_id", "contract_id", "period", name="uq_installments_org_contract_period"),
        Index("ix_installments_org_status_due", "org_id", "status", "due_date"),
    )

    # natural key: "{contract_id}__{period}"
    id: Mapped[str] = mapped_column(String(96), primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    contract_id: Mapped[str] = mapped_column(String(64), ForeignKey("contracts.id"), nullable=False, index=True)

    period: Mapped[str] = mapped_column(String(7), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    paid: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    due: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # None => inherit the contract's notification config
    notification_override: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    has_unverified_payments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    agreement_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    contract: Mapped["Contract"] = relationship(back_populates="installments")
    items: Mapped[List["InstallmentItem"]] = relationship(
        back_populates="installment", cascade="all, delete-orphan", order_by="InstallmentItem.created_at"
    )
    payments: Mapped[List["Payment"]] = relationship(back_populates="installment")

    @property
    def credit(self) -> float:
        return max(float(self.paid or 0.0) - float(self.total or 0.0), 0.0)

    def model_dump(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contract_id": self.contract_id,
            "period": self.period,
            "due_date": self.due_date,
            "status": self.status,
            "total": self.total,
            "paid": self.paid,
            "due": self.due,
            "notification_override": self.notification_override,
            "has_unverified_payments": self.has_unverified_payments,
            "agreement_note": self.agreement_note,
        }


class InstallmentItem(Base):
    __tablename__ = "installment_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    installment_id: Mapped[str] = mapped_column(
        String(96), ForeignKey("installments.id", ondelete="CASCADE"), nullable=False, index=True
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    installment: Mapped["Installment"] = relationship(back_populates="items")

    def model_dump(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "installment_id": self.installment_id,
            "type": self.type,
            "label": self.label,
            "amount": self.amount,
        }


# -----------------------------
# Payments (canonical tenant-scoped table; the per-installment view is a query)
# -----------------------------
class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (Index("ix_payments_org_contract", "org_id", "contract_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    contract_id: Mapped[str] = mapped_column(String(64), ForeignKey("contracts.id"), nullable=False)
    installment_id: Mapped[str] = mapped_column(String(96), ForeignKey("installments.id"), nullable=False, index=True)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default="other")  # cash|transfer|card|other
    collected_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    without_receipt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # {"name", "path", "url"}
    receipt_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    installment: Mapped["Installment"] = relationship(back_populates="payments")

    @property
    def receipt(self) -> Optional[dict[str, Any]]:
        return _loads(self.receipt_json, None)

    def model_dump(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "installment_id": self.installment_id,
            "amount": self.amount,
            "paid_at": self.paid_at,
            "method": self.method,
            "without_receipt": self.without_receipt,
            "note": self.note,
        }


# -----------------------------
# Notification sent ledger
# -----------------------------
class NotificationLog(Base):
    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint(
            "installment_id",
            "notification_type",
            "channel",
            "audience",
            "recipient",
            "day_key",
            name="uq_notification_logs_dedupe",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    installment_id: Mapped[str] = mapped_column(String(96), ForeignKey("installments.id"), nullable=False, index=True)

    notification_type: Mapped[str] = mapped_column(String(30), nullable=False)  # PRE_DUE_5|POST_DUE_1|GUARANTOR_DUE_5
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # email|whatsapp
    audience: Mapped[str] = mapped_column(String(20), nullable=False)  # TENANT|GUARANTOR
    recipient: Mapped[str] = mapped_column(String(200), nullable=False)
    day_key: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD

    sent_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
