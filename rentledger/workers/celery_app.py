# rentledger/workers/celery_app.py
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from ..config import settings
from ..logging_config import configure_logging

BROKER = settings.celery_broker_url or "redis://localhost:6379/0"
BACKEND = settings.celery_result_backend or "redis://localhost:6379/1"

celery_app = Celery(
    "rentledger",
    broker=BROKER,
    backend=BACKEND,
    include=["rentledger.workers.installment_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
    enable_utc=True,
)

celery_app.conf.task_routes = {
    "rentledger.workers.installment_tasks.*": {"queue": "installments"},
}

# Daily status sweep; UTC wall clock.
celery_app.conf.beat_schedule = {
    "recompute-installment-status-daily": {
        "task": "rentledger.workers.installment_tasks.recompute_installment_status_daily",
        "schedule": crontab(
            hour=int(settings.recompute_schedule_hour),
            minute=int(settings.recompute_schedule_minute),
        ),
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging()
