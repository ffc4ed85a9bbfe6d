# tests/test_api.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from leaseledger.main import create_app

OWNER = {"X-User-Email": "owner@test.local", "X-User-Role": "owner"}
OPS = {"X-User-Email": "ops@test.local", "X-User-Role": "ops"}
TENANT = {"X-User-Email": "tenant@test.local", "X-User-Role": "tenant"}


@pytest.fixture()
def client():
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def unit_and_tenant(client):
    prop = client.post(
        "/api/properties",
        json={"address": "12 Elm St", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        headers=OWNER,
    )
    assert prop.status_code == 201, prop.text
    unit = client.post(
        f"/api/properties/{prop.json()['id']}/units",
        json={"name": "1A", "rent_amount": "1000.00"},
        headers=OWNER,
    )
    assert unit.status_code == 201, unit.text
    tenant = client.post("/api/tenants", json={"full_name": "Pat Renter"}, headers=OWNER)
    assert tenant.status_code == 201, tenant.text
    return unit.json()["id"], tenant.json()["id"]


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers.get("X-Request-ID")


def test_missing_identity_is_401(client):
    assert client.get("/api/audit").status_code == 401


def test_unknown_role_is_403(client):
    r = client.get("/api/audit", headers={"X-User-Email": "x@test.local", "X-User-Role": "root"})
    assert r.status_code == 403


def test_hold_confirm_pay_flow(client, unit_and_tenant):
    unit_id, tenant_id = unit_and_tenant

    hold = client.post("/api/holds", json={"unit_id": unit_id}, headers=OWNER)
    assert hold.status_code == 201, hold.text

    clash = client.post("/api/holds", json={"unit_id": unit_id}, headers=TENANT)
    assert clash.status_code == 409
    assert clash.json()["error"]["code"] == "AlreadyHeld"
    assert clash.json()["error"]["retryable"] is False

    lease = client.post(
        "/api/leases/confirm",
        json={"unit_id": unit_id, "tenant_id": tenant_id, "start_date": "2024-01-15", "end_date": "2025-01-15"},
        headers=OWNER,
    )
    assert lease.status_code == 201, lease.text
    body = lease.json()
    assert body["payments_created"] == 12
    assert body["first_due_date"] == "2024-01-15"
    assert body["last_due_date"] == "2024-12-15"

    again = client.post(
        "/api/leases/confirm",
        json={"unit_id": unit_id, "tenant_id": tenant_id, "start_date": "2025-02-01", "end_date": "2025-06-01"},
        headers=OWNER,
    )
    assert again.status_code == 409

    detail = client.get(f"/api/leases/{body['lease_id']}", headers=OWNER)
    assert detail.status_code == 200
    payments = detail.json()["payments"]
    assert len(payments) == 12

    first = sorted(payments, key=lambda x: x["due_date"])[0]
    posted = client.post(f"/api/payments/{first['id']}/post", json={"amount": "1000.00", "method": "card"}, headers=OWNER)
    assert posted.status_code == 200, posted.text
    assert posted.json()["status"] == "paid"

    twice = client.post(f"/api/payments/{first['id']}/post", json={"amount": "1000.00", "method": "card"}, headers=OWNER)
    assert twice.status_code == 409
    assert twice.json()["error"]["code"] == "PaymentAlreadyPosted"

    assert client.get("/api/consistency/mismatches", headers=OWNER).json() == []


def test_error_kinds_map_to_status_codes(client, unit_and_tenant):
    unit_id, tenant_id = unit_and_tenant

    missing = client.post("/api/holds", json={"unit_id": "nope"}, headers=OWNER)
    assert missing.status_code == 404
    assert missing.json()["error"] == {
        "kind": "not_found",
        "code": "UnitNotFound",
        "message": "unit nope not found",
        "retryable": False,
    }

    bad_range = client.post(
        "/api/leases/confirm",
        json={"unit_id": unit_id, "tenant_id": tenant_id, "start_date": "2024-05-01", "end_date": "2024-05-01"},
        headers=OWNER,
    )
    assert bad_range.status_code == 422
    assert bad_range.json()["error"]["code"] == "InvalidDateRange"


def test_operator_routes_reject_tenants(client):
    assert client.post("/api/consistency/repair", headers=TENANT).status_code == 403
    assert client.post("/api/payments/process-overdue", headers=TENANT).status_code == 403

    r = client.post("/api/consistency/repair", headers=OPS)
    assert r.status_code == 200
    assert r.json()["units_updated"] == 0

    check = client.post("/api/consistency/check", params={"auto_fix": True}, headers=OPS)
    assert check.status_code == 200
    assert check.json()["issues_found"] == 0


def test_late_fee_quote(client):
    r = client.get(
        "/api/payments/late-fee",
        params={"due_date": "2024-01-15", "amount": "1000.00", "as_of": "2024-01-25"},
        headers=TENANT,
    )
    assert r.status_code == 200
    assert r.json()["days_overdue"] == 10
    assert r.json()["late_fee"] == "50.00"

    within_grace = client.get(
        "/api/payments/late-fee",
        params={"due_date": "2024-01-15", "amount": "1000.00", "as_of": "2024-01-20"},
        headers=TENANT,
    )
    assert within_grace.json()["late_fee"] == "0.00"


def test_audit_feed_pages_with_cursor(client, unit_and_tenant):
    unit_id, _ = unit_and_tenant
    client.post("/api/holds", json={"unit_id": unit_id}, headers=OWNER)

    first = client.get("/api/audit/feed", params={"limit": 2}, headers=OPS).json()
    assert len(first["entries"]) == 2
    rest = client.get("/api/audit/feed", params={"after_id": first["next_after_id"]}, headers=OPS).json()
    ops = [e["op"] for e in first["entries"] + rest["entries"]]
    assert ops == ["create_property", "create_unit", "create_tenant", "place_hold"]

    errors = client.get("/api/audit", params={"status": "error"}, headers=OPS).json()
    assert errors == []


def test_new_unit_cannot_start_leased(client):
    prop = client.post(
        "/api/properties",
        json={"address": "1 Oak", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        headers=OWNER,
    ).json()
    r = client.post(f"/api/properties/{prop['id']}/units", json={"name": "2B", "rent_amount": "900", "status": "LEASED"}, headers=OWNER)
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "InvalidUnitStatus"


def test_other_owner_cannot_see_property(client):
    prop = client.post(
        "/api/properties",
        json={"address": "1 Oak", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        headers=OWNER,
    ).json()
    other = {"X-User-Email": "someone@test.local", "X-User-Role": "owner"}
    assert client.get(f"/api/properties/{prop['id']}", headers=other).status_code == 404
    assert client.get(f"/api/properties/{prop['id']}", headers=OPS).status_code == 200


def test_inbound_request_id_becomes_audit_correlation_id(client, unit_and_tenant):
    unit_id, _ = unit_and_tenant
    r = client.post("/api/holds", json={"unit_id": unit_id}, headers={**OWNER, "X-Request-ID": "trace-abc-123"})
    assert r.headers["X-Request-ID"] == "trace-abc-123"

    rows = client.get("/api/audit", params={"op": "place_hold"}, headers=OPS).json()
    assert rows[0]["correlation_id"] == "trace-abc-123"


def test_garbage_request_id_is_replaced(client):
    r = client.get("/api/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"


def test_maintenance_queue_lists_critical_first(client, unit_and_tenant):
    unit_id, tenant_id = unit_and_tenant
    low = client.post(
        "/api/maintenance",
        json={"unit_id": unit_id, "description": "squeaky hinge", "priority": 5},
        headers=TENANT,
    )
    assert low.status_code == 201, low.text
    urgent = client.post(
        "/api/maintenance",
        json={"unit_id": unit_id, "tenant_id": tenant_id, "description": "gas smell", "category": "hvac", "priority": 1},
        headers=TENANT,
    )
    assert urgent.status_code == 201, urgent.text

    queue = client.get("/api/maintenance", params={"unit_id": unit_id}, headers=OPS).json()
    assert [r["description"] for r in queue] == ["gas smell", "squeaky hinge"]

    moved = client.post(f"/api/maintenance/{urgent.json()['id']}/status", json={"status": "assigned", "assigned_to": "Acme"}, headers=OPS)
    assert moved.status_code == 200
    assert client.get(f"/api/maintenance/{urgent.json()['id']}", headers=OPS).json()["status"] == "assigned"

    assert client.get("/api/maintenance", params={"unit_id": "nope"}, headers=OPS).status_code == 404
    assert client.get("/api/maintenance/nope", headers=OPS).status_code == 404
