# tests/test_maintenance.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import fetch
from leaseledger.errors import ConflictError, NotFoundError, ValidationError
from leaseledger.models import MaintenanceRequest
from leaseledger.services.event_bus import bus
from leaseledger.services.maintenance import create_request, update_status

T0 = datetime(2024, 3, 1, 9, 0)


def test_create_notifies_subscribers(db, make_unit, make_tenant):
    created = []
    bus.subscribe("maintenance.created", created.append)

    unit_id = make_unit()
    tenant_id = make_tenant()
    req = create_request(
        db,
        unit_id=unit_id,
        tenant_id=tenant_id,
        category="plumbing",
        priority=1,
        description="  kitchen sink leaking  ",
        estimated_cost="120",
        now=T0,
    )

    row = fetch(MaintenanceRequest, req.id)
    assert (row.status, row.description, row.estimated_cost) == ("open", "kitchen sink leaking", Decimal("120.00"))
    assert [e.payload["request_id"] for e in created] == [req.id]
    assert created[0].payload["priority"] == 1


@pytest.mark.parametrize(
    "kwargs, code",
    [
        ({"category": "roofing"}, "InvalidCategory"),
        ({"priority": 9}, "InvalidPriority"),
        ({"description": "   "}, "InvalidDescription"),
    ],
)
def test_create_validation(db, make_unit, kwargs, code):
    args = {"unit_id": make_unit(), "description": "door sticks", **kwargs}
    with pytest.raises(ValidationError) as ei:
        create_request(db, **args)
    assert ei.value.code == code


def test_create_for_unknown_unit_or_tenant(db, make_unit):
    with pytest.raises(NotFoundError) as ei:
        create_request(db, unit_id="nope", description="x")
    assert ei.value.code == "UnitNotFound"

    with pytest.raises(NotFoundError) as ei:
        create_request(db, unit_id=make_unit(), tenant_id="nope", description="x")
    assert ei.value.code == "TenantNotFound"


def test_lifecycle_to_resolved(db, make_unit):
    req = create_request(db, unit_id=make_unit(), description="no heat", category="hvac", now=T0)

    update_status(db, request_id=req.id, status="assigned", assigned_to="Acme HVAC", now=T0)
    update_status(db, request_id=req.id, status="in_progress", now=T0)
    done = datetime(2024, 3, 2, 17, 30)
    update_status(db, request_id=req.id, status="resolved", actual_cost="340.5", now=done)

    row = fetch(MaintenanceRequest, req.id)
    assert row.status == "resolved"
    assert row.assigned_to == "Acme HVAC"
    assert row.actual_cost == Decimal("340.50")
    assert row.completed_at == done


def test_resolved_is_terminal(db, make_unit):
    req = create_request(db, unit_id=make_unit(), description="bulb out", category="electrical")
    update_status(db, request_id=req.id, status="in_progress")
    update_status(db, request_id=req.id, status="resolved")

    with pytest.raises(ConflictError) as ei:
        update_status(db, request_id=req.id, status="cancelled")
    assert ei.value.code == "InvalidStatusTransition"


def test_unknown_status_and_request(db, make_unit):
    req = create_request(db, unit_id=make_unit(), description="x")
    with pytest.raises(ValidationError) as ei:
        update_status(db, request_id=req.id, status="done")
    assert ei.value.code == "InvalidStatus"

    with pytest.raises(NotFoundError) as ei:
        update_status(db, request_id="nope", status="assigned")
    assert ei.value.code == "MaintenanceRequestNotFound"
