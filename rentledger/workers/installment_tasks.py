# rentledger/workers/installment_tasks.py
from __future__ import annotations

import logging

from ..db import session_scope
from ..errors import TransientStoreError, ValidationError
from ..services.contract_lifecycle import on_contract_created
from ..services.recompute import recompute_installment_statuses
from .celery_app import celery_app

log = logging.getLogger(__name__)


@celery_app.task(name="rentledger.workers.installment_tasks.recompute_installment_status_daily")
def recompute_installment_status_daily() -> dict:
    """
    Scheduled sweep. Not retried: a failed run leaves earlier pages committed
    and tomorrow's run converges the rest.
    """
    with session_scope() as db:
        r = recompute_installment_statuses(db)
    return {"ok": True, "scanned": r.scanned, "updated": r.updated, "pages": r.pages}


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    name="rentledger.workers.installment_tasks.on_contract_created_task",
)
def on_contract_created_task(self, org_id: int, contract_id: str) -> dict:
    """
    Materializes installments for a freshly created contract.

    Re-delivery is safe; existing installments are skipped. Storage failures
    are retried, invalid contracts are not.
    """
    try:
        with session_scope() as db:
            r = on_contract_created(db, org_id=int(org_id), contract_id=str(contract_id))
    except ValidationError as e:
        return {"ok": False, "reason": e.message}
    except TransientStoreError as e:
        log.warning(
            "installment generation failed; retrying",
            extra={"org_id": int(org_id), "contract_id": str(contract_id)},
        )
        raise self.retry(exc=e)
    return {"ok": True, "created": r.created, "skipped": r.skipped}
