# leaseledger/workers/celery_app.py
from __future__ import annotations

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from ..config import settings

celery_app = Celery(
    "leaseledger",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["leaseledger.workers.tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "leaseledger.workers.tasks.*": {"queue": "ledger"},
}

# procedures are idempotent, so overlapping or repeated beats are harmless
celery_app.conf.beat_schedule = {
    "repair-unit-statuses": {
        "task": "leaseledger.workers.tasks.repair_unit_statuses",
        "schedule": timedelta(seconds=int(settings.repair_interval_seconds)),
    },
    "expire-stale-holds": {
        "task": "leaseledger.workers.tasks.expire_stale_holds",
        "schedule": timedelta(seconds=int(settings.hold_sweep_interval_seconds)),
    },
    "process-overdue-payments": {
        "task": "leaseledger.workers.tasks.process_overdue_payments",
        "schedule": crontab(hour=1, minute=0),
    },
}
