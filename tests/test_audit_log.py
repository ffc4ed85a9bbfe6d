# tests/test_audit_log.py
from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import fetch, fetch_all
from leaseledger.db import SessionLocal
from leaseledger.errors import ConflictError
from leaseledger.models import AuditLog, Hold, Unit, AUDIT_ERROR, AUDIT_SUCCESS, UNIT_HOLD
from leaseledger.services import audit_log as audit_mod
from leaseledger.services.audit_log import (
    list_audit_entries,
    log_operation,
    recent_audit_entries,
    subscribe_audit_feed,
)
from leaseledger.services.holds import place_hold


def _rows(op: str | None = None) -> list[AuditLog]:
    q = select(AuditLog).order_by(AuditLog.id)
    if op:
        q = q.where(AuditLog.op == op)
    return fetch_all(q)


def test_successful_procedure_writes_one_success_row(db, make_unit):
    unit_id = make_unit()
    place_hold(db, unit_id=unit_id, requester_id="alice", correlation_id="req-1")

    rows = _rows("place_hold")
    assert len(rows) == 1
    r = rows[0]
    assert (r.status, r.scope, r.object_type, r.object_id, r.actor) == (AUDIT_SUCCESS, "hold", "unit", unit_id, "alice")
    assert r.correlation_id == "req-1"
    assert r.error is None
    assert r.rows_affected and r.rows_affected >= 1
    assert "holds" in (r.sql_statement or "")


def test_failed_procedure_writes_one_error_row_with_code(db, make_unit):
    unit_id = make_unit()
    place_hold(db, unit_id=unit_id, requester_id="alice")

    with pytest.raises(ConflictError):
        place_hold(db, unit_id=unit_id, requester_id="bob")

    rows = _rows("place_hold")
    assert [r.status for r in rows] == [AUDIT_SUCCESS, AUDIT_ERROR]
    assert "AlreadyHeld" in rows[1].error
    assert rows[1].actor == "bob"


def test_feed_cursor_walks_forward(db, make_unit):
    for _ in range(3):
        place_hold(db, unit_id=make_unit(), requester_id="alice")

    first = list_audit_entries(db, after_id=0, limit=2)
    assert len(first) == 2
    rest = list_audit_entries(db, after_id=first[-1].id, limit=10)
    assert len(rest) == 1
    assert [e.id for e in first + rest] == sorted(e.id for e in first + rest)
    assert list_audit_entries(db, after_id=rest[-1].id) == []


def test_recent_entries_filter_by_status(db, make_unit):
    unit_id = make_unit()
    place_hold(db, unit_id=unit_id, requester_id="alice")
    with pytest.raises(ConflictError):
        place_hold(db, unit_id=unit_id, requester_id="bob")

    errors = recent_audit_entries(db, status=AUDIT_ERROR)
    assert [e.actor for e in errors] == ["bob"]
    assert errors[0].params["unit_id"] == unit_id


def test_live_subscriber_sees_committed_entries_only(db, make_unit):
    seen = []
    unsubscribe = subscribe_audit_feed(seen.append)

    unit_id = make_unit()
    place_hold(db, unit_id=unit_id, requester_id="alice")
    with pytest.raises(ConflictError):
        place_hold(db, unit_id=unit_id, requester_id="bob")
    unsubscribe()
    place_hold(db, unit_id=make_unit(), requester_id="carol")

    assert [(e.op, e.status) for e in seen] == [("place_hold", AUDIT_SUCCESS), ("place_hold", AUDIT_ERROR)]


def test_log_operation_rides_callers_transaction():
    s = SessionLocal()
    try:
        log_operation(s, scope="property", op="create_property", object_type="property", object_id="p1")
        s.rollback()
    finally:
        s.close()
    assert _rows("create_property") == []

    s = SessionLocal()
    try:
        log_id = log_operation(
            s,
            scope="property",
            op="create_property",
            object_type="property",
            object_id="p1",
            params={"when": datetime(2024, 1, 1)},
            commit=True,
        )
    finally:
        s.close()
    rows = _rows("create_property")
    assert [r.id for r in rows] == [log_id]
    assert "2024-01-01" in rows[0].params


def test_log_operation_rejects_unknown_status(db):
    with pytest.raises(ValueError):
        log_operation(db, scope="x", op="y", object_type="z", status="maybe")


def test_failed_audit_write_does_not_undo_procedure(db, make_unit, monkeypatch):
    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_log", {}, Exception("disk I/O error"))

    monkeypatch.setattr(audit_mod, "_insert_row", broken_insert)

    unit_id = make_unit()
    res = place_hold(db, unit_id=unit_id, requester_id="alice")

    assert fetch(Unit, unit_id).status == UNIT_HOLD
    assert fetch(Hold, res.hold_id).user_id == "alice"
    assert _rows() == []
