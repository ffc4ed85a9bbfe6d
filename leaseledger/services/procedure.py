# leaseledger/services/procedure.py
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import InternalError, LedgerError, translate_db_error
from ..middleware.correlation import get_correlation_id, new_correlation_id
from ..models import AUDIT_ERROR, AUDIT_SUCCESS, as_naive_utc, utcnow
from .audit_log import log_in_transaction, log_out_of_band
from .event_bus import discard_staged, publish_staged, stage_event

log = logging.getLogger("leaseledger.procedure")


@dataclass
class ProcedureContext:
    """
    Transaction-scoped state handed to a procedure body.

    Holds the session, the clock reading the whole procedure agrees on, who
    is acting, and what the audit row will say about it.
    """

    db: Session
    scope: str
    op: str
    object_type: str
    object_id: Optional[str]
    actor: Optional[str]
    correlation_id: str
    now: datetime
    params: dict[str, Any] = field(default_factory=dict)
    statements: list[str] = field(default_factory=list)
    rows_affected: int = 0
    result: Optional[dict[str, Any]] = None

    def execute(self, stmt: Any, params: Optional[dict[str, Any]] = None) -> Any:
        """Run a Core/ORM DML statement, remembering its SQL text and rowcount."""
        res = self.db.execute(stmt, params) if params is not None else self.db.execute(stmt)
        self.statements.append(str(stmt))
        rc = getattr(res, "rowcount", None)
        if rc is not None and rc >= 0:
            self.rows_affected += int(rc)
        return res

    def record(self, sql: str, rows: int = 0) -> None:
        """For ORM inserts that don't go through execute()."""
        self.statements.append(sql)
        self.rows_affected += int(rows)

    def stage(self, event_type: str, payload: Optional[dict[str, Any]] = None) -> None:
        stage_event(self.db, event_type, payload, correlation_id=self.correlation_id)

    def audit_fields(self, *, status: str, error: Optional[str], duration_ms: int) -> dict[str, Any]:
        params = dict(self.params)
        if self.result is not None and status == AUDIT_SUCCESS:
            params["result"] = self.result
        return {
            "scope": self.scope,
            "op": self.op,
            "object_type": self.object_type,
            "object_id": self.object_id,
            "params": params,
            "sql": ";\n".join(self.statements) or None,
            "rows_affected": self.rows_affected,
            "status": status,
            "error": error,
            "correlation_id": self.correlation_id,
            "actor": self.actor,
            "duration_ms": duration_ms,
        }


@contextmanager
def run_procedure(
    db: Session,
    *,
    scope: str,
    op: str,
    object_type: str,
    object_id: Optional[str] = None,
    actor: Optional[str] = None,
    params: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Iterator[ProcedureContext]:
    """
    One procedure == one database transaction == one audit row.

    - commits on success, with the audit row written under a savepoint in
      the same transaction
    - rolls back on any error, then writes an "error" audit row out of band
    - store errors are translated to the LedgerError taxonomy
    - staged events are published only after commit

    Whatever the caller left open on the session is committed first so the
    procedure starts on a fresh transaction boundary.
    """
    if db.in_transaction():
        db.commit()

    ctx = ProcedureContext(
        db=db,
        scope=scope,
        op=op,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        actor=actor,
        correlation_id=correlation_id or get_correlation_id() or new_correlation_id(),
        now=as_naive_utc(now) if now is not None else utcnow(),
        params=dict(params or {}),
    )
    t0 = time.perf_counter()

    def _elapsed_ms() -> int:
        return int((time.perf_counter() - t0) * 1000)

    try:
        yield ctx
        db.flush()
        log_in_transaction(db, **ctx.audit_fields(status=AUDIT_SUCCESS, error=None, duration_ms=_elapsed_ms()))
        db.commit()
    except LedgerError as e:
        err: LedgerError = e
        cause: BaseException = e
    except SQLAlchemyError as e:
        err = translate_db_error(e)
        cause = e
    except Exception as e:
        log.exception("procedure crashed", extra={"op": op, "correlation_id": ctx.correlation_id})
        err = InternalError("Unexpected", f"{type(e).__name__}: {e}")
        cause = e
    else:
        log.info(
            "%s ok",
            op,
            extra={
                "op": op,
                "correlation_id": ctx.correlation_id,
                "duration_ms": _elapsed_ms(),
            },
        )
        publish_staged(db)
        return

    db.rollback()
    discard_staged(db)

    log.info(
        "%s failed: %s",
        op,
        err.code,
        extra={
            "op": op,
            "correlation_id": ctx.correlation_id,
            "duration_ms": _elapsed_ms(),
            "error_kind": err.kind,
            "error_code": err.code,
        },
    )
    log_out_of_band(db, **ctx.audit_fields(status=AUDIT_ERROR, error=err.audit_text(), duration_ms=_elapsed_ms()))

    if err is cause:
        raise err
    raise err from cause
