# rentledger/routers/dashboard.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..schemas import DashboardSummaryOut
from ..services.dashboard_rollups import installment_rollup

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummaryOut)
def dashboard_summary(
    contract_id: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    period_from: Optional[str] = Query(default=None, description="YYYY-MM"),
    period_to: Optional[str] = Query(default=None, description="YYYY-MM"),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    r = installment_rollup(
        db,
        org_id=p.org_id,
        contract_id=contract_id,
        status=status,
        period_from=period_from,
        period_to=period_to,
    )
    return DashboardSummaryOut(
        installments=r.installments,
        total=r.total,
        paid=r.paid,
        due=r.due,
        status_counts=r.status_counts,
        unverified_payments=r.unverified_payments,
    )
