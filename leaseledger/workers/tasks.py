# leaseledger/workers/tasks.py
from __future__ import annotations

import logging
import random
from typing import Any, Callable

from sqlalchemy.orm import Session

from ..config import settings
from ..db import SessionLocal
from ..errors import TransientError
from ..middleware.correlation import bind_correlation_id
from ..services import consistency, holds, payments
from .celery_app import celery_app

log = logging.getLogger("leaseledger.workers")


def _backoff_seconds(retries: int) -> int:
    """
    Exponential backoff with jitter.
    retries is the current retry count (0 for first retry attempt).
    """
    base = int(settings.jobs_retry_base_seconds or 2)
    cap = int(settings.jobs_retry_max_seconds or 60)

    delay = min(cap, base * (2 ** max(0, int(retries))))

    # jitter: +/- 20%
    jitter = int(delay * 0.2)
    if jitter > 0:
        delay = max(1, delay + random.randint(-jitter, jitter))
    return delay


def _run(task: Any, fn: Callable[[Session], Any]) -> Any:
    """
    Own session and correlation id (the celery task id) per task run.
    TransientError (lock contention) is retried with backoff; every other
    LedgerError is final and propagates.
    """
    db = SessionLocal()
    try:
        with bind_correlation_id(task.request.id):
            return fn(db)
    except TransientError as e:
        retries = int(task.request.retries or 0)
        log.warning(
            "task hit lock contention, retrying",
            extra={"op": task.name, "error_code": e.code},
        )
        raise task.retry(exc=e, countdown=_backoff_seconds(retries))
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=settings.jobs_max_retries, name="leaseledger.workers.tasks.repair_unit_statuses")
def repair_unit_statuses(self) -> dict:
    return _run(self, lambda db: consistency.repair_unit_statuses(db, actor="celery"))


@celery_app.task(bind=True, max_retries=settings.jobs_max_retries, name="leaseledger.workers.tasks.expire_stale_holds")
def expire_stale_holds(self) -> dict:
    return _run(self, lambda db: holds.expire_stale_holds(db, actor="celery"))


@celery_app.task(
    bind=True,
    max_retries=settings.jobs_max_retries,
    name="leaseledger.workers.tasks.process_overdue_payments",
)
def process_overdue_payments(self) -> dict:
    rows = _run(self, lambda db: payments.process_overdue_payments(db, actor="celery"))
    return {"ok": True, "processed": len(rows), "results": rows}
