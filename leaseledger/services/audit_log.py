# leaseledger/services/audit_log.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import AuditLog, AUDIT_SUCCESS, AUDIT_ERROR, utcnow
from .event_bus import DomainEvent, bus, publish_staged, stage_event

log = logging.getLogger("leaseledger.audit")

AUDIT_APPENDED = "audit.appended"


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def _loads(s: Optional[str]) -> Optional[dict[str, Any]]:
    if not s:
        return None
    try:
        return json.loads(s)
    except ValueError:
        return {"raw": s}


@dataclass(frozen=True)
class AuditEntry:
    id: int
    created_at: datetime
    actor: Optional[str]
    scope: str
    op: str
    object_type: str
    object_id: Optional[str]
    correlation_id: Optional[str]
    sql_statement: Optional[str]
    params: Optional[dict[str, Any]]
    rows_affected: Optional[int]
    duration_ms: Optional[int]
    status: str
    error: Optional[str]

    @classmethod
    def from_row(cls, r: AuditLog) -> "AuditEntry":
        return cls(
            id=int(r.id),
            created_at=r.created_at,
            actor=r.actor,
            scope=r.scope,
            op=r.op,
            object_type=r.object_type,
            object_id=r.object_id,
            correlation_id=r.correlation_id,
            sql_statement=r.sql_statement,
            params=_loads(r.params),
            rows_affected=r.rows_affected,
            duration_ms=r.duration_ms,
            status=r.status,
            error=r.error,
        )


def log_operation(
    db: Session,
    *,
    scope: str,
    op: str,
    object_type: str,
    object_id: Optional[str] = None,
    params: Optional[dict[str, Any]] = None,
    sql: Optional[str] = None,
    rows_affected: Optional[int] = None,
    status: str = AUDIT_SUCCESS,
    error: Optional[str] = None,
    correlation_id: Optional[str] = None,
    actor: Optional[str] = None,
    duration_ms: Optional[int] = None,
    commit: bool = False,
) -> int:
    """
    Append one audit row and return its id.

    - Does NOT commit by default, so the row rides in the caller's transaction.
    - The row is immutable once written; nothing in the codebase updates it.
    - Subscribers see it (audit.appended) only after the transaction commits.
    """
    if status not in (AUDIT_SUCCESS, AUDIT_ERROR):
        raise ValueError(f"invalid audit status: {status}")

    row = _insert_row(
        db,
        scope=scope,
        op=op,
        object_type=object_type,
        object_id=object_id,
        params=params,
        sql=sql,
        rows_affected=rows_affected,
        status=status,
        error=error,
        correlation_id=correlation_id,
        actor=actor,
        duration_ms=duration_ms,
    )
    _stage_appended(db, row)

    if commit:
        db.commit()
        publish_staged(db)
    return int(row.id)


def _insert_row(
    db: Session,
    *,
    scope: str,
    op: str,
    object_type: str,
    object_id: Optional[str] = None,
    params: Optional[dict[str, Any]] = None,
    sql: Optional[str] = None,
    rows_affected: Optional[int] = None,
    status: str = AUDIT_SUCCESS,
    error: Optional[str] = None,
    correlation_id: Optional[str] = None,
    actor: Optional[str] = None,
    duration_ms: Optional[int] = None,
) -> AuditLog:
    row = AuditLog(
        created_at=utcnow(),
        actor=actor,
        scope=str(scope),
        op=str(op),
        object_type=str(object_type),
        object_id=str(object_id) if object_id is not None else None,
        correlation_id=correlation_id,
        sql_statement=sql,
        params=_dumps(params),
        rows_affected=int(rows_affected) if rows_affected is not None else None,
        duration_ms=int(duration_ms) if duration_ms is not None else None,
        status=status,
        error=error,
    )
    db.add(row)
    db.flush()
    return row


def _stage_appended(db: Session, row: AuditLog) -> None:
    stage_event(db, AUDIT_APPENDED, {"entry": AuditEntry.from_row(row)}, correlation_id=row.correlation_id)


def log_in_transaction(db: Session, **fields: Any) -> Optional[int]:
    """
    Audit row inside the procedure's own transaction, under a SAVEPOINT.

    A failed insert rolls back only the savepoint; the procedure still
    commits. Failures are logged and swallowed.
    """
    if fields.get("status", AUDIT_SUCCESS) not in (AUDIT_SUCCESS, AUDIT_ERROR):
        raise ValueError(f"invalid audit status: {fields.get('status')}")
    fields.setdefault("status", AUDIT_SUCCESS)
    try:
        with db.begin_nested():
            row = _insert_row(db, **fields)
    except SQLAlchemyError:
        log.warning(
            "audit write failed inside transaction",
            exc_info=True,
            extra={"op": fields.get("op"), "correlation_id": fields.get("correlation_id")},
        )
        return None

    _stage_appended(db, row)
    return int(row.id)


def log_out_of_band(db: Session, **fields: Any) -> Optional[int]:
    """
    Audit row on a separate session bound to the same engine, committed on
    its own. Used for failed procedures, whose transaction has already been
    rolled back.
    """
    side = Session(bind=db.get_bind(), expire_on_commit=False)
    try:
        log_id = log_operation(side, **fields)
        side.commit()
        publish_staged(side)
        return log_id
    except SQLAlchemyError:
        side.rollback()
        log.warning(
            "out-of-band audit write failed",
            exc_info=True,
            extra={"op": fields.get("op"), "correlation_id": fields.get("correlation_id")},
        )
        return None
    finally:
        side.close()


# -------------------------
# Feed for external readers
# -------------------------
def list_audit_entries(
    db: Session,
    *,
    after_id: int = 0,
    limit: int = 100,
) -> list[AuditEntry]:
    """
    Entries with id > after_id, oldest first.

    Consumers keep the last id they processed and pass it back; ids are
    monotonic so replaying from a saved cursor gives at-least-once delivery.
    """
    cap = max(1, min(int(limit), int(settings.audit_feed_max_batch)))
    q = select(AuditLog).where(AuditLog.id > int(after_id)).order_by(AuditLog.id.asc()).limit(cap)
    return [AuditEntry.from_row(r) for r in db.scalars(q).all()]


def recent_audit_entries(
    db: Session,
    *,
    object_type: Optional[str] = None,
    object_id: Optional[str] = None,
    status: Optional[str] = None,
    op: Optional[str] = None,
    limit: int = 50,
) -> list[AuditEntry]:
    q = select(AuditLog).order_by(AuditLog.id.desc())
    if object_type:
        q = q.where(AuditLog.object_type == object_type)
    if object_id:
        q = q.where(AuditLog.object_id == object_id)
    if status:
        q = q.where(AuditLog.status == status)
    if op:
        q = q.where(AuditLog.op == op)
    cap = max(1, min(int(limit), int(settings.audit_feed_max_batch)))
    return [AuditEntry.from_row(r) for r in db.scalars(q.limit(cap)).all()]


def subscribe_audit_feed(callback: Callable[[AuditEntry], None]) -> Callable[[], None]:
    """Live tail: callback gets every committed entry. Returns an unsubscribe."""

    def _handler(ev: DomainEvent) -> None:
        entry = ev.payload.get("entry")
        if entry is not None:
            callback(entry)

    return bus.subscribe(AUDIT_APPENDED, _handler)
