# tests/test_errors.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from leaseledger.errors import (
    ConflictError,
    InternalError,
    TransientError,
    register_error_handlers,
    translate_db_error,
)


class _PgError(Exception):
    def __init__(self, msg: str, pgcode: str):
        super().__init__(msg)
        self.pgcode = pgcode


def test_integrity_error_is_conflict():
    err = translate_db_error(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: holds.unit_id")))
    assert isinstance(err, ConflictError)
    assert err.code == "ConstraintViolation"
    assert not err.retryable


def test_sqlite_lock_is_transient():
    err = translate_db_error(OperationalError("UPDATE", {}, Exception("database is locked")))
    assert isinstance(err, TransientError)
    assert err.retryable


def test_serialization_failure_sqlstate_is_transient():
    err = translate_db_error(OperationalError("UPDATE", {}, _PgError("could not serialize access", "40001")))
    assert isinstance(err, TransientError)
    assert err.sqlstate == "40001"
    assert err.audit_text().startswith("[40001] LockContention:")


def test_anything_else_is_internal():
    err = translate_db_error(ProgrammingError("SELECT", {}, Exception("no such column: x")))
    assert isinstance(err, InternalError)
    assert err.code == "StoreError"


def test_transient_response_asks_for_retry():
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/busy")
    def busy():
        raise TransientError("LockContention", "database is locked")

    r = TestClient(app).get("/busy")
    assert r.status_code == 503
    assert r.headers["Retry-After"] == "1"
    assert r.json() == {
        "error": {"kind": "transient", "code": "LockContention", "message": "database is locked", "retryable": True}
    }
