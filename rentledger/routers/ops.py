# rentledger/routers/ops.py
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import require_owner
from ..db import get_db
from ..schemas import RecomputeResultOut
from ..services.recompute import recompute_installment_statuses

log = logging.getLogger(__name__)

router = APIRouter(prefix="/ops", tags=["ops"])


@router.post("/recompute", response_model=RecomputeResultOut)
def recompute_now(
    today: Optional[date] = Query(default=None, description="override the UTC day (backfills)"),
    page_size: Optional[int] = Query(default=None, ge=1, le=5000),
    db: Session = Depends(get_db),
    p=Depends(require_owner),
):
    """
    Runs the daily status sweep on demand. It scans every office, not only
    the caller's; owners only.
    """
    log.info("manual status sweep requested", extra={"org_id": p.org_id, "user_id": p.user_id})
    r = recompute_installment_statuses(db, today=today, page_size=page_size)
    return RecomputeResultOut(scanned=r.scanned, updated=r.updated, pages=r.pages, stopped_early=r.stopped_early)
