# leaseledger/errors.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

NOT_FOUND = "not_found"
CONFLICT = "conflict"
VALIDATION = "validation"
TRANSIENT = "transient"
INTERNAL = "internal"

HTTP_STATUS = {
    NOT_FOUND: 404,
    CONFLICT: 409,
    VALIDATION: 422,
    TRANSIENT: 503,
    INTERNAL: 500,
}

# SQLSTATEs / driver messages that mean "lost a lock race, try again"
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03"}
_TRANSIENT_MARKERS = (
    "database is locked",
    "could not serialize access",
    "deadlock detected",
    "could not obtain lock",
    "lock timeout",
)


class LedgerError(Exception):
    """
    Base for every error a procedure reports to its caller.

    kind: coarse class the caller branches on (retry vs. show to user)
    code: stable name of the specific condition, e.g. "AlreadyHeld"
    """

    kind: str = INTERNAL

    def __init__(self, code: str, message: str, *, sqlstate: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.sqlstate = sqlstate

    @property
    def retryable(self) -> bool:
        return self.kind == TRANSIENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }

    def audit_text(self) -> str:
        prefix = f"[{self.sqlstate}] " if self.sqlstate else ""
        return f"{prefix}{self.code}: {self.message}"


class NotFoundError(LedgerError):
    kind = NOT_FOUND


class ConflictError(LedgerError):
    kind = CONFLICT


class ValidationError(LedgerError):
    kind = VALIDATION


class TransientError(LedgerError):
    kind = TRANSIENT


class InternalError(LedgerError):
    kind = INTERNAL


def _sqlstate(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return str(code) if code else None


def translate_db_error(exc: SQLAlchemyError) -> LedgerError:
    """
    Map a store exception raised mid-transaction onto the taxonomy.

    IntegrityError means another transaction won a race on a unique or
    foreign key; lock and serialization failures are safe to retry.
    """
    state = _sqlstate(exc)
    text = str(getattr(exc, "orig", None) or exc)
    lowered = text.lower()

    if isinstance(exc, IntegrityError):
        return ConflictError("ConstraintViolation", text, sqlstate=state)

    if state in _TRANSIENT_SQLSTATES or (
        isinstance(exc, OperationalError) and any(m in lowered for m in _TRANSIENT_MARKERS)
    ):
        return TransientError("LockContention", text, sqlstate=state)

    return InternalError("StoreError", text, sqlstate=state)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(
            status_code=HTTP_STATUS.get(exc.kind, 500),
            content={"error": exc.to_dict()},
            headers=headers,
        )
