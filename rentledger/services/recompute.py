# rentledger/services/recompute.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain.status import DATE_DRIVEN, classify_due_date, today_utc
from ..errors import TransientStoreError
from ..models import Installment

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputeResult:
    scanned: int
    updated: int
    pages: int
    stopped_early: bool = False


def _utcnow() -> datetime:
    return datetime.utcnow()


def recompute_installment_statuses(
    db: Session,
    *,
    today: Optional[date] = None,
    page_size: Optional[int] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> RecomputeResult:
    """
    Daily sweep over every office's date-driven installments.

    - Only UPCOMING / DUE_TODAY / OVERDUE rows are read; PAID, PARTIAL and
      IN_AGREEMENT are never touched.
    - Pages are keyed by installment id (stable cursor), at most page_size
      rows each, one commit per page.
    - Each write is conditional on the status read in this page, so a payment
      recorded mid-sweep wins.
    - should_stop is checked between pages only.

    A storage failure aborts the run after rolling back the current page;
    pages already committed stay committed and the next run converges.
    """
    reference = today or today_utc()
    size = int(page_size or settings.recompute_page_size)

    scanned = 0
    updated = 0
    pages = 0
    last_id: Optional[str] = None
    stopped_early = False

    while True:
        if should_stop is not None and should_stop():
            stopped_early = True
            break

        q = (
            select(Installment.id, Installment.status, Installment.due_date)
            .where(Installment.status.in_(sorted(DATE_DRIVEN)))
            .order_by(Installment.id.asc())
            .limit(size)
        )
        if last_id is not None:
            q = q.where(Installment.id > last_id)

        try:
            rows = db.execute(q).all()
            if not rows:
                break

            pages += 1
            page_updates = 0
            now = _utcnow()
            for iid, current, due_date in rows:
                scanned += 1
                if due_date is None:
                    continue
                nxt = classify_due_date(due_date, reference)
                if nxt == current:
                    continue
                res = db.execute(
                    update(Installment)
                    .where(Installment.id == iid, Installment.status == current)
                    .values(status=nxt, updated_at=now, version=Installment.version + 1)
                    .execution_options(synchronize_session=False)
                )
                page_updates += int(res.rowcount or 0)

            db.commit()
            updated += page_updates
        except SQLAlchemyError as e:
            db.rollback()
            log.error(
                "installment status sweep aborted",
                extra={"scanned": scanned, "updated": updated, "pages": pages},
            )
            raise TransientStoreError(f"storage error during sweep: {type(e).__name__}") from e

        last_id = rows[-1][0]
        if len(rows) < size:
            break

    log.info(
        "installment status sweep done",
        extra={"scanned": scanned, "updated": updated, "pages": pages, "time_zone": "UTC"},
    )
    return RecomputeResult(scanned=scanned, updated=updated, pages=pages, stopped_early=stopped_early)
