# rentledger/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# -------------------- Contracts --------------------

class PartyIn(BaseModel):
    full_name: str = ""
    national_id: Optional[str] = None
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    address: Optional[str] = None


class UpdateRuleIn(BaseModel):
    type: str = "MANUAL"  # IPC|ICL|FIXED|MANUAL
    period_months: int = 12


class ContractCreate(BaseModel):
    property_title: str = ""
    property_address: str = ""
    tenant: PartyIn = Field(default_factory=PartyIn)
    owner: PartyIn = Field(default_factory=PartyIn)
    guarantors: list[PartyIn] = Field(default_factory=list)

    start_date: date
    end_date: date
    due_day: int = 1
    rent_amount: float

    update_rule: UpdateRuleIn = Field(default_factory=UpdateRuleIn)
    deposit_amount: float = 0.0
    guarantee_type: Optional[str] = None
    notifications_enabled: bool = False


class ContractOut(BaseModel):
    id: str
    property_title: str
    property_address: str
    tenant: dict[str, Any]
    owner: dict[str, Any]
    guarantors: list[dict[str, Any]]

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_day: Optional[int] = None
    rent_amount: float

    update_rule_type: str
    update_rule_period_months: int
    deposit_amount: float
    guarantee_type: str

    notification_enabled: bool
    notification_emails: list[str]
    notification_whatsapps: list[str]
    pdf: Optional[dict[str, Any]] = None

    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationConfigIn(BaseModel):
    enabled: bool


class ContractPdfIn(BaseModel):
    path: str
    download_url: str


# -------------------- Installments --------------------

class InstallmentOut(BaseModel):
    id: str
    contract_id: str
    period: str
    due_date: date
    status: str

    total: float
    paid: float
    due: float
    credit: float

    notification_override: Optional[bool] = None
    has_unverified_payments: bool
    agreement_note: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InstallmentPageOut(BaseModel):
    items: list[InstallmentOut]
    next_cursor: Optional[str] = None


class GenerateResultOut(BaseModel):
    created: int
    skipped: int
    installment_ids: list[str]


class LineItemUpsert(BaseModel):
    id: Optional[str] = None  # present => edit in place
    type: str
    label: str
    amount: float


class LineItemOut(BaseModel):
    id: str
    installment_id: str
    type: str
    label: str
    amount: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LateFeeIn(BaseModel):
    amount: float
    label: Optional[str] = None


class AgreementIn(BaseModel):
    enabled: bool
    note: Optional[str] = None


class NotificationOverrideIn(BaseModel):
    # null => inherit the contract's config again
    enabled: Optional[bool] = None


class NotificationSentIn(BaseModel):
    notification_type: str
    channel: str
    audience: str
    recipient: str
    day: Optional[date] = None


class NotificationSentOut(BaseModel):
    logged: bool


# -------------------- Payments --------------------

class ReceiptIn(BaseModel):
    name: str = ""
    path: str = ""
    url: str = ""


class PaymentCreate(BaseModel):
    amount: float
    without_receipt: bool = False
    method: str = "other"  # cash|transfer|card|other
    paid_at: Optional[datetime] = None
    receipt: Optional[ReceiptIn] = None
    note: Optional[str] = None
    collected_by: Optional[str] = None


class MarkPaidIn(BaseModel):
    collected_by: Optional[str] = None
    note: Optional[str] = None


class PaymentOut(BaseModel):
    id: str
    contract_id: str
    installment_id: str
    amount: float
    paid_at: datetime
    method: str
    collected_by: Optional[str] = None
    without_receipt: bool
    receipt: Optional[dict[str, Any]] = None
    note: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MarkPaidOut(BaseModel):
    installment: InstallmentOut
    payment: Optional[PaymentOut] = None


# -------------------- Reminders --------------------

class MessageOut(BaseModel):
    subject: str
    body: str
    whatsapp_text: str


class ReminderOut(BaseModel):
    installment_id: str
    audience: str
    due_type: str
    message: MessageOut
    recipients: dict[str, list[str]]
    already_sent: bool


# -------------------- Dashboard / Ops --------------------

class DashboardSummaryOut(BaseModel):
    installments: int
    total: float
    paid: float
    due: float
    status_counts: dict[str, int]
    unverified_payments: int


class RecomputeResultOut(BaseModel):
    scanned: int
    updated: int
    pages: int
    stopped_early: bool = False
